"""Repository introspection through the git executable.

Short commands whose output is small (version, tag list, tree list, object
existence) run through GitPython in a thread pool so the event loop is never
blocked. Commands whose output can be large (archive, show) are streamed via
`utils.process_runner`.
"""

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor

from git import Git

from models.repo import RepoPath
from services.repo_directory import RepositoryDirectory
from utils.process_runner import ProcessStream, open_stream
from utils.tree_parser import parse_ls_tree


def git_executable() -> str:
    return Git.GIT_PYTHON_GIT_EXECUTABLE or "git"


class GitIntrospector:
    """Ask git about tags, trees, objects and archives of hosted repositories."""

    def __init__(self, directory: RepositoryDirectory, executor: ThreadPoolExecutor | None = None):
        self.directory = directory
        self._executor = executor

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    def _git(self, repo: RepoPath) -> Git:
        return Git(str(self.directory.path_for(repo)))

    async def version(self) -> str:
        """
        Return the output of `git --version`.

        Raises:
            GitCommandNotFound: If git cannot be started.
        """
        return await self._run(Git().execute, [git_executable(), "--version"])

    async def list_tags(self, repo: RepoPath) -> list[str]:
        """
        List tag names with `git tag -l`.

        Raises:
            CommandError: If the command fails.
        """
        output = await self._run(self._git(repo).tag, "-l")
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def resolve_tree(self, repo: RepoPath, ref: str) -> str:
        """Return the tree object id a ref points at."""
        output = await self._run(self._git(repo).rev_parse, "--verify", f"{ref}^{{tree}}")
        return output.strip()

    async def list_tree(self, repo: RepoPath, ref: str, recursive: bool = False) -> list[dict]:
        """
        List a tree with `git ls-tree --full-tree -l -z [-r] <ref>`.

        Returns:
            list[dict]: Entries with mode, type, sha, size and path.

        Raises:
            CommandError: If the command fails.
            TreeParseError: If any output line cannot be parsed.
        """
        args = ["--full-tree", "-l", "-z"]
        if recursive:
            args.append("-r")
        args.append(ref)
        output = await self._run(self._git(repo).ls_tree, *args)
        return parse_ls_tree(output)

    async def cat_exists(self, repo: RepoPath, ref: str, path: str) -> None:
        """
        Check that `<ref>:<path>` names an object, via `git cat-file -e`.

        Raises:
            CommandError: If the object does not exist.
        """
        await self._run(self._git(repo).cat_file, "-e", f"{ref}:{path}")

    async def show_object(self, repo: RepoPath, ref: str, path: str) -> ProcessStream:
        """Stream the contents of `<ref>:<path>` via `git show --format=raw`."""
        return await open_stream(
            [git_executable(), "show", "--format=raw", f"{ref}:{path}"],
            cwd=self.directory.path_for(repo),
        )

    async def archive(self, repo: RepoPath, ref: str, prefix: str) -> ProcessStream:
        """
        Stream `git archive --format=tar.gz --prefix=<prefix>/ <ref>`.

        Raises:
            ProcessError: If git cannot start or fails before writing output.
        """
        return await open_stream(
            [git_executable(), "archive", "--format=tar.gz", f"--prefix={prefix}/", ref],
            cwd=self.directory.path_for(repo),
        )
