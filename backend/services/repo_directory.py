"""Filesystem registry of bare repositories under a root directory.

Repositories live at `<root>/<category>/<name>.git`. Nothing is cached: every
call re-queries the filesystem. Archiving renames a repository in place by
appending a `-YYYYMMDD-HHMM` suffix; repositories are never deleted.
"""

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterator

from git import Repo
from git.exc import CommandError

from models.repo import RepoPath

logger = logging.getLogger(__name__)

REPO_GLOB = "*.git"


def archive_suffix(now: datetime) -> str:
    """Suffix appended to an archived repository, e.g. `-20240115-0930`."""
    return now.strftime("-%Y%m%d-%H%M")


class RepositoryDirectory:
    """Bare repositories stored below a single root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, repo: RepoPath) -> Path:
        return self.root / repo.category / repo.name

    def exists(self, repo: RepoPath) -> bool:
        return self.path_for(repo).is_dir()

    def iter_repos(self) -> Iterator[str]:
        """
        Yield repository directories matching `*/*.git` under the root.

        Paths are `category/name.git`, ordered by category and then by name.
        Nothing is yielded if the root does not exist.
        """
        if not self.root.is_dir():
            return
        for category in sorted(path for path in self.root.iterdir() if path.is_dir()):
            for path in sorted(category.glob(REPO_GLOB)):
                if path.is_dir():
                    yield path.relative_to(self.root).as_posix()

    def create(self, repo: RepoPath) -> Path:
        """
        Create a new bare repository.

        The repository directory is created with a plain mkdir first, so an
        existing repository is never re-initialized.

        Args:
            repo: Repository to create.

        Returns:
            Path: Path of the new repository.

        Raises:
            FileExistsError: If the repository already exists.
            OSError: If the directory cannot be created.
            CommandError: If `git init --bare` fails or git is missing.
        """
        repo_path = self.path_for(repo)
        repo_path.parent.mkdir(parents=True, exist_ok=True)
        repo_path.mkdir()
        try:
            Repo.init(repo_path, bare=True)
        except CommandError:
            shutil.rmtree(repo_path, ignore_errors=True)
            raise
        logger.info("Created bare repository %s", repo_path)
        return repo_path

    def archive(self, repo: RepoPath, now: datetime | None = None) -> str:
        """
        Archive a repository by renaming it with a timestamp suffix.

        Args:
            repo: Repository to archive.
            now: Timestamp for the suffix. Defaults to the current local time.

        Returns:
            str: The archived path relative to the root, e.g.
                `team/app.git-20240115-0930`.

        Raises:
            FileNotFoundError: If the repository does not exist.
            FileExistsError: If the archive name is already taken (same minute).
            OSError: If the rename fails.
        """
        source = self.path_for(repo)
        if not source.is_dir():
            raise FileNotFoundError(f"Repository does not exist: {repo}")

        archived_name = repo.name + archive_suffix(now or datetime.now())
        target = source.with_name(archived_name)
        if target.exists():
            raise FileExistsError(f"Archive target already exists: {repo.category}/{archived_name}")

        source.rename(target)
        logger.info("Archived repository %s to %s", source, target)
        return f"{repo.category}/{archived_name}"
