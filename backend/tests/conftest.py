"""Shared fixtures: a gateway app over a temporary repository root."""

import io
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from git import Repo

from main import create_app
from services.activity_log import ActivityLogger
from utils.settings import Settings

# httpx asks for gzip by default; tests opt in explicitly
NO_GZIP = {"Accept-Encoding": "identity"}


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(repo_dir=tmp_path / "repos", log_file=tmp_path / "gateway.log", port=8080, log_level="debug")


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def app(settings, log_stream):
    return create_app(settings, log=ActivityLogger("debug", stream=log_stream))


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def create_work_repo(tmp_path: Path, files: dict[str, str], tags: list[str] | None = None) -> Repo:
    """Create a non-bare repository with one commit containing `files`."""
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    repo = Repo.init(work_dir)
    repo.config_writer().set_value("user", "name", "Tester").release()
    repo.config_writer().set_value("user", "email", "tester@example.com").release()

    for rel_path, content in files.items():
        file_path = work_dir / rel_path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
    repo.git.add("--all")
    repo.index.commit("Initial commit")

    for tag in tags or []:
        repo.create_tag(tag)
    return repo


def publish_bare(work_repo: Repo, repo_root: Path, category: str, name: str) -> Path:
    """Clone a work repository as `<repo_root>/<category>/<name>.git`."""
    bare_path = repo_root / category / f"{name}.git"
    bare_path.parent.mkdir(parents=True, exist_ok=True)
    Repo.clone_from(work_repo.working_dir, str(bare_path), bare=True)
    return bare_path


@pytest.fixture
def hosted_repo(tmp_path, settings) -> Path:
    """A hosted `team/app.git` with two files, a subdirectory and tags v1, v2."""
    work = create_work_repo(
        tmp_path,
        {"README.md": "# App\n", "src/main.py": "print('hello')\n"},
        tags=["v1", "v2"],
    )
    return publish_bare(work, settings.repo_dir, "team", "app")
