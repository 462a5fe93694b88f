"""Pytest configuration and fixtures for pullguard tests."""

import re
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

import pytest

from pullguard.core.log import ConsoleSink, setup_logger


@pytest.fixture(autouse=True, scope="session")
def configure_logging():
    """Configure logging for console-only mode during tests.

    This enables debug output during test runs without sending
    anything to an OTLP collector.
    """
    test_log_root = Path(tempfile.gettempdir()) / "pullguard-tests"
    setup_logger(
        log_root=test_log_root,
        repo_name="test",
        console=ConsoleSink(level="debug"),
    )


@pytest.fixture(scope="session")
def test_config():
    """Load configuration for tests without CLI parsing conflicts.

    Creates a State object with full configuration loading, but
    temporarily replaces sys.argv to avoid conflicts with pytest's
    command line arguments.

    Returns:
        Config object with all settings loaded from defaults
    """
    from pullguard.core.config import State

    old_argv = sys.argv
    sys.argv = ['pullguard']

    try:
        state = State()
        return state.config
    finally:
        sys.argv = old_argv


# merge-tree --write-tree with --merge-base arrived in git 2.40
MIN_GIT = (2, 40)


def git_version() -> tuple[int, int]:
    if shutil.which("git") is None:
        return (0, 0)
    out = subprocess.run(
        ["git", "--version"], capture_output=True, text=True, check=False
    ).stdout
    match = re.search(r"(\d+)\.(\d+)", out)
    return (int(match.group(1)), int(match.group(2))) if match else (0, 0)


def pytest_collection_modifyitems(config, items):
    """Skip tests marked ``git`` when no recent git is installed."""
    if git_version() >= MIN_GIT:
        return
    skip = pytest.mark.skip(reason=f"git >= {MIN_GIT[0]}.{MIN_GIT[1]} required")
    for item in items:
        if item.get_closest_marker("git"):
            item.add_marker(skip)


class GitSandbox:
    """A throwaway repository driven through the real git binary."""

    def __init__(self, path: Path):
        self.path = path

    def git(self, *args: str, check: bool = True) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            check=False,
        )
        if check and result.returncode != 0:
            raise AssertionError(
                f"git {' '.join(args)} failed: {result.stderr}"
            )
        return result.stdout

    def write(self, name: str, content: str) -> None:
        target = self.path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)

    def read(self, name: str) -> str:
        return (self.path / name).read_text()

    def commit(self, message: str, *paths: str) -> str:
        self.git("add", "-A", *paths)
        self.git("commit", "-q", "-m", message)
        return self.git("rev-parse", "HEAD").strip()


@pytest.fixture
def git_sandbox():
    """Wrap an existing directory as a GitSandbox."""
    return GitSandbox


@pytest.fixture
def sandbox(tmp_path):
    """Empty repository on ``main`` with a fixed identity."""
    repo = GitSandbox(tmp_path / "repo")
    repo.path.mkdir()
    repo.git("init", "-q", "-b", "main")
    repo.git("config", "user.name", "Test User")
    repo.git("config", "user.email", "test@example.com")
    repo.git("config", "commit.gpgsign", "false")
    repo.git("config", "merge.conflictStyle", "merge")
    return repo
