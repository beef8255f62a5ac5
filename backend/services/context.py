"""Per-application context shared by the route handlers."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from services.activity_log import ActivityLogger
from services.event_bus import EventBus
from services.git_introspector import GitIntrospector
from services.repo_directory import RepositoryDirectory
from utils.settings import Settings


@dataclass
class GatewayContext:
    settings: Settings
    log: ActivityLogger
    repos: RepositoryDirectory
    git: GitIntrospector
    events: EventBus = field(default_factory=EventBus)
    executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_settings(cls, settings: Settings, log: ActivityLogger | None = None) -> "GatewayContext":
        """
        Build every component from the settings and wire up activity logging.

        Creates the repository root and the log file directory if missing.
        """
        executor = ThreadPoolExecutor(max_workers=4)
        if log is None:
            log = ActivityLogger(settings.log_level, log_file=settings.log_file)
        repos = RepositoryDirectory(settings.repo_dir)
        repos.ensure_root()
        context = cls(
            settings=settings,
            log=log,
            repos=repos,
            git=GitIntrospector(repos, executor=executor),
            executor=executor,
        )
        log.subscribe_to(context.events)
        return context

    def close(self) -> None:
        self.log.close()
        if self.executor is not None:
            self.executor.shutdown(wait=False)
