"""Pytest configuration and fixtures for hookgate tests."""
import subprocess
from pathlib import Path

import pytest


def pytest_sessionfinish(session, exitstatus):
    """Check that coverage data was collected if --cov was requested.

    This prevents silent "no data collected" scenarios that produce 0% coverage
    without failing the test run.
    """
    cov_enabled = any("--cov" in str(arg) for arg in session.config.args)

    if not cov_enabled:
        return

    cwd = Path.cwd()
    coverage_files = list(cwd.glob(".coverage*"))

    if not coverage_files:
        pytest.exit(
            "Coverage was enabled but no data was collected. "
            "Check that tests import from 'hookgate' (the package) not 'src/hookgate' (filesystem path).",
            returncode=1
        )


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository with one commit on main."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init")
    git(repo, "config", "user.email", "test@example.com")
    git(repo, "config", "user.name", "Test User")
    git(repo, "config", "core.hooksPath", ".git/hooks")

    (repo / "README.md").write_text("# test\n", encoding="utf-8")
    git(repo, "add", "README.md")
    git(repo, "commit", "-m", "initial")
    git(repo, "branch", "-M", "main")
    return repo


@pytest.fixture
def repo_with_origin(git_repo: Path, tmp_path: Path) -> Path:
    """git_repo pushed to a bare origin with main tracking origin/main."""
    remote = tmp_path / "origin.git"
    subprocess.run(["git", "init", "--bare", str(remote)], check=True, capture_output=True)
    git(git_repo, "remote", "add", "origin", str(remote))
    git(git_repo, "push", "-u", "origin", "main")
    return git_repo
