"""Tests for the filesystem repository registry."""

from datetime import datetime

import pytest
from git import Repo

from models.repo import RepoPath
from services.repo_directory import RepositoryDirectory, archive_suffix

REPO = RepoPath.from_params("team", "app")


def test_archive_suffix_is_zero_padded():
    assert archive_suffix(datetime(2024, 1, 5, 7, 3)) == "-20240105-0703"
    assert archive_suffix(datetime(2024, 12, 25, 23, 59)) == "-20241225-2359"


def test_create_makes_bare_repository(tmp_path):
    directory = RepositoryDirectory(tmp_path)

    repo_path = directory.create(REPO)

    assert repo_path == tmp_path / "team" / "app.git"
    assert directory.exists(REPO)
    assert Repo(repo_path).bare


def test_create_refuses_existing_repository(tmp_path):
    directory = RepositoryDirectory(tmp_path)
    repo_path = directory.create(REPO)
    (repo_path / "marker").write_text("keep", encoding="utf-8")

    with pytest.raises(FileExistsError):
        directory.create(REPO)

    assert (repo_path / "marker").read_text(encoding="utf-8") == "keep"


def test_archive_renames_with_timestamp(tmp_path):
    directory = RepositoryDirectory(tmp_path)
    directory.create(REPO)

    archived = directory.archive(REPO, now=datetime(2024, 3, 9, 8, 5))

    assert archived == "team/app.git-20240309-0805"
    assert not directory.exists(REPO)
    assert (tmp_path / "team" / "app.git-20240309-0805").is_dir()


def test_archive_missing_repository_leaves_filesystem_alone(tmp_path):
    directory = RepositoryDirectory(tmp_path)

    with pytest.raises(FileNotFoundError):
        directory.archive(REPO)

    assert list(tmp_path.iterdir()) == []


def test_archive_collision_in_same_minute_fails(tmp_path):
    directory = RepositoryDirectory(tmp_path)
    now = datetime(2024, 3, 9, 8, 5)
    directory.create(REPO)
    directory.archive(REPO, now=now)
    directory.create(REPO)

    with pytest.raises(FileExistsError):
        directory.archive(REPO, now=now)

    assert directory.exists(REPO)


def test_iter_repos_matches_only_repository_directories(tmp_path):
    directory = RepositoryDirectory(tmp_path)
    directory.create(RepoPath.from_params("team", "b"))
    directory.create(RepoPath.from_params("alpha", "a"))
    directory.create(REPO)
    directory.archive(REPO)
    (tmp_path / "team" / "notes.txt").write_text("x", encoding="utf-8")

    assert list(directory.iter_repos()) == ["alpha/a.git", "team/b.git"]


def test_iter_repos_on_missing_root(tmp_path):
    assert list(RepositoryDirectory(tmp_path / "nope").iter_repos()) == []
