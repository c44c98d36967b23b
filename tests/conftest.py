"""Shared test fixtures and utilities."""

import shutil
import subprocess
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from mission_tracker.context import TrackerContext
from mission_tracker.diffing import DiffEngine
from mission_tracker.events import CollectingSink
from mission_tracker.service import TrackerDeps, TrackerService
from mission_tracker.snapshot import SnapshotService
from mission_tracker.store import MemoryRecordStore


requires_git = pytest.mark.skipif(
    shutil.which("git") is None, reason="git binary not available"
)


class GitRepo:
    """Small driver for a throwaway git repository."""

    def __init__(self, root: Path):
        self.root = root

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args], cwd=self.root, capture_output=True, text=True, check=True
        )
        return result.stdout.strip()

    def write(self, path: str, content: str = "content\n") -> Path:
        file_path = self.root / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path

    def commit(self, message: str = "change", *paths: str) -> str:
        self.git("add", *(paths or ["-A"]))
        self.git("commit", "-q", "-m", message)
        return self.head()

    def head(self) -> str:
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def git_repo(tmp_path):
    """A git repository with one committed file, file.ts."""
    if shutil.which("git") is None:
        pytest.skip("git binary not available")

    root = tmp_path / "repo"
    root.mkdir()
    repo = GitRepo(root)
    repo.git("init", "-q")
    repo.git("config", "user.email", "tests@example.com")
    repo.git("config", "user.name", "Tests")
    repo.git("config", "commit.gpgsign", "false")
    repo.write("file.ts", "export const a = 1;\n")
    repo.commit("initial")
    return repo


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture to write files relative to tmp_path."""
    def _write(path: str, content: str = "test content"):
        file_path = tmp_path / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content)
        return file_path
    return _write


@pytest.fixture
def initialized_ctx(tmp_path, monkeypatch):
    """Create an initialized project context in tmp_path."""
    monkeypatch.chdir(tmp_path)
    return TrackerContext.init()


class FakeClock:
    """Deterministic clock that advances only when told to."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def make_service(store, sink, clock):
    """Factory for a TrackerService over the memory store.

    Probes default to the real git binary; pass snapshots/diff_engine to fake them.
    """
    def _make(root: Path = None, snapshots=None, diff_engine=None) -> TrackerService:
        deps = TrackerDeps(
            store=store,
            snapshots=snapshots or SnapshotService(),
            diff_engine=diff_engine or DiffEngine(),
            sink=sink,
            now=clock,
            root=root,
        )
        return TrackerService(deps)
    return _make
