"""Data models for repository paths and introspection responses."""

import re
from dataclasses import dataclass

from pydantic import BaseModel

GIT_SUFFIX = ".git"
SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9._-]*$")


@dataclass(frozen=True)
class RepoPath:
    """A `category/name.git` repository identifier relative to the repo root."""

    category: str
    name: str  # always ends in .git

    @classmethod
    def from_params(cls, category: str, name: str) -> "RepoPath":
        """
        Build a repository path from request parameters.

        The `.git` suffix is appended once if missing (case-insensitive check).

        Raises:
            ValueError: If either segment is not path-safe.
        """
        for segment in (category, name):
            if not segment or segment in (".", "..") or not SAFE_SEGMENT.match(segment):
                raise ValueError(f"Invalid repository path segment: {segment!r}")
        if not name.lower().endswith(GIT_SUFFIX):
            name = name + GIT_SUFFIX
        if name[: -len(GIT_SUFFIX)] in ("", ".", ".."):
            raise ValueError(f"Invalid repository name: {name!r}")
        return cls(category=category, name=name)

    @classmethod
    def parse(cls, value: str) -> "RepoPath":
        """Parse a `category/name[.git]` string."""
        parts = value.strip("/").split("/")
        if len(parts) != 2:
            raise ValueError(f"Repository path must have two segments: {value!r}")
        return cls.from_params(parts[0], parts[1])

    @property
    def bare_name(self) -> str:
        """Repository name without the `.git` suffix."""
        return self.name[: -len(GIT_SUFFIX)]

    def __str__(self) -> str:
        return f"{self.category}/{self.name}"


class TagEntry(BaseModel):
    """A tag in a repository."""

    name: str


class TreeEntry(BaseModel):
    """One entry of a tree listing."""

    mode: str
    type: str  # "blob" | "tree" | "commit"
    sha: str
    size: int
    path: str
    url: str


class TreeListing(BaseModel):
    """Response model for the tree listing endpoint."""

    sha: str
    url: str
    tree: list[TreeEntry]
