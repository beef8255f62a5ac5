"""Leveled activity log for the gateway.

Built on stdlib logging with a dedicated logger and file handler. Levels follow
the syslog ordering, lowest number = most severe:

    EMERGENCY(0) < CRITICAL(1) < ERROR(2) < WARNING(3) < INFO(4) < DEBUG(5)

A message is written when its number is <= the configured threshold. Lines
look like::

    [2024-01-15 10:30:00.123] INFO - Repo Push: team/app.git/4b82... (main)
"""

import itertools
import logging
from pathlib import Path
from typing import IO

from models.events import FetchEvent, InfoEvent, PushEvent, TagEvent
from services.event_bus import EventBus

EMERGENCY = logging.CRITICAL + 10
logging.addLevelName(EMERGENCY, "EMERGENCY")

# Level name -> (syslog-style number, stdlib level)
LEVELS = {
    "EMERGENCY": (0, EMERGENCY),
    "CRITICAL": (1, logging.CRITICAL),
    "ERROR": (2, logging.ERROR),
    "WARNING": (3, logging.WARNING),
    "INFO": (4, logging.INFO),
    "DEBUG": (5, logging.DEBUG),
}

_logger_ids = itertools.count()


class ActivityFormatter(logging.Formatter):
    default_time_format = "%Y-%m-%d %H:%M:%S"
    default_msec_format = "%s.%03d"

    def __init__(self):
        super().__init__("[%(asctime)s] %(levelname)s - %(message)s")


def resolve_level(level: str | int) -> int:
    """
    Map a level name or syslog-style number to a stdlib logging level.

    Raises:
        ValueError: If the level is unknown.
    """
    if isinstance(level, int):
        for number, stdlib_level in LEVELS.values():
            if number == level:
                return stdlib_level
        raise ValueError(f"Unknown log level: {level!r}")
    key = level.strip().upper()
    if key == "WARN":
        key = "WARNING"
    if key not in LEVELS:
        raise ValueError(f"Unknown log level: {level!r}. Must be one of {list(LEVELS)}")
    return LEVELS[key][1]


class ActivityLogger:
    """Process-wide activity log writing to a file or stream."""

    def __init__(
        self,
        level: str | int = "debug",
        log_file: Path | None = None,
        stream: IO[str] | None = None,
    ):
        self.level = resolve_level(level)
        # Each instance owns its handler, so loggers are never shared
        self._logger = logging.getLogger(f"gateway.activity.{next(_logger_ids)}")
        self._logger.setLevel(self.level)
        self._logger.propagate = False

        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            self._handler: logging.Handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        else:
            self._handler = logging.StreamHandler(stream)
        self._handler.setFormatter(ActivityFormatter())
        self._logger.addHandler(self._handler)

    def is_enabled_for(self, level: str | int) -> bool:
        return resolve_level(level) >= self.level

    def log(self, level: str | int, msg: str, *args) -> None:
        self._logger.log(resolve_level(level), msg, *args)

    def emergency(self, msg: str, *args) -> None:
        self._logger.log(EMERGENCY, msg, *args)

    def critical(self, msg: str, *args) -> None:
        self._logger.critical(msg, *args)

    def error(self, msg: str, *args) -> None:
        self._logger.error(msg, *args)

    def warn(self, msg: str, *args) -> None:
        self._logger.warning(msg, *args)

    warning = warn

    def info(self, msg: str, *args) -> None:
        self._logger.info(msg, *args)

    def debug(self, msg: str, *args) -> None:
        self._logger.debug(msg, *args)

    def close(self) -> None:
        self._logger.removeHandler(self._handler)
        self._handler.close()

    # ------------------------------------------------------------------
    # Protocol activity subscribers
    # ------------------------------------------------------------------

    def on_push(self, event: PushEvent) -> None:
        self.info("Repo Push: %s", f"{event.repo}/{event.commit} ({event.branch})")
        event.accept()

    def on_tag(self, event: TagEvent) -> None:
        self.info("Repo Tags: %s", f"{event.repo}/{event.commit} ({event.version})")
        event.accept()

    def on_fetch(self, event: FetchEvent) -> None:
        self.info("Repo Fetch: %s", f"{event.repo}/{event.commit}")
        event.accept()

    def on_info(self, event: InfoEvent) -> None:
        self.debug("Repo Query: %s", event.repo)
        event.accept()

    def subscribe_to(self, bus: EventBus) -> None:
        """Log every push, tag, fetch and info event, and accept each one."""
        bus.subscribe("push", self.on_push)
        bus.subscribe("tag", self.on_tag)
        bus.subscribe("fetch", self.on_fetch)
        bus.subscribe("info", self.on_info)
