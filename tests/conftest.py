from __future__ import annotations

import shutil
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

import pytest


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


class FakeGit:
    """In-memory stand-in for ``GitClient`` driven by the test."""

    def __init__(
        self,
        status_output: str | None = "",
        originals: dict[str, str | bytes | None] | None = None,
        revision: str | None = "c0ffee",
    ) -> None:
        self.status_output = status_output
        self.originals = dict(originals or {})
        self.revision = revision
        self.status_calls = 0
        self.show_calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def status(self, root: Path) -> str | None:
        with self._lock:
            self.status_calls += 1
        return self.status_output

    def show(self, root: Path, ref: str, relative_path: str) -> bytes | None:
        with self._lock:
            self.show_calls.append((ref, relative_path))
        value = self.originals.get(relative_path)
        if value is None:
            return None
        return value.encode() if isinstance(value, str) else value

    def resolve_revision(self, root: Path, ref: str = "HEAD") -> str | None:
        return self.revision


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    return root.resolve()


@dataclass
class GitRepo:
    path: Path

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout

    def write(self, relative_path: str, text: str) -> Path:
        target = self.path / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text)
        return target

    def commit(self, message: str = "update") -> None:
        self.git("add", "-A")
        self.git("commit", "-q", "-m", message)


@pytest.fixture
def git_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, fake_home: Path) -> None:
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test Author")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "author@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test Author")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "author@example.com")


@pytest.fixture
def git_repo(git_env: None, tmp_path: Path) -> GitRepo:
    path = tmp_path / "repo"
    path.mkdir()
    repo = GitRepo(path.resolve())
    repo.git("init", "-q")
    repo.write("README.md", "# demo\n")
    repo.write("src/app.py", "def main():\n    return 1\n")
    repo.commit("initial")
    return repo
