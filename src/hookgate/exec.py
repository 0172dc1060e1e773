"""git invocation helpers for hook-time queries."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

# Hooks run while git holds the index; queries must not try to refresh it.
HOOK_GIT_ENV = {"GIT_OPTIONAL_LOCKS": "0", "GIT_TERMINAL_PROMPT": "0"}


@dataclass(frozen=True)
class ExecResult:
    """Captured result of one git call."""

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ExecError(RuntimeError):
    """Raised when git exits non-zero in check mode."""

    def __init__(self, result: ExecResult):
        rendered = " ".join(result.argv)
        detail = (result.stderr or result.stdout).strip()
        super().__init__(f"command failed ({result.returncode}): {rendered}\n{detail}")
        self.result = result


def run_git(
    args: list[str],
    *,
    repo_root: Path,
    check: bool = True,
) -> ExecResult:
    """Run git rooted at repo_root with hook-safe environment overrides."""
    argv = ["git", *args]
    completed = subprocess.run(
        argv,
        cwd=repo_root,
        env={**os.environ, **HOOK_GIT_ENV},
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        check=False,
    )
    result = ExecResult(
        argv=tuple(argv),
        cwd=repo_root,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )
    if check and not result.ok:
        raise ExecError(result)
    return result


def resolve_repo_root(repo: Path | None = None) -> Path:
    """Resolve the working-tree root from cwd or an explicit path."""
    start_dir = (repo or Path.cwd()).resolve()
    try:
        out = run_git(["rev-parse", "--show-toplevel"], repo_root=start_dir)
    except (ExecError, OSError) as exc:
        raise RuntimeError(f"unable to resolve git repo root from {start_dir}: {exc}") from exc
    root = out.stdout.strip()
    if not root:
        raise RuntimeError(f"not inside a git working tree: {start_dir}")
    return Path(root).resolve()


def git_path(repo_root: Path, name: str) -> Path:
    """Absolute location of a path inside the git dir (honors core.hooksPath for ``hooks``)."""
    try:
        out = run_git(["rev-parse", "--git-path", name], repo_root=repo_root)
    except (ExecError, OSError) as exc:
        raise RuntimeError(f"unable to locate git path {name!r}: {exc}") from exc
    path = Path(out.stdout.strip())
    return path if path.is_absolute() else (repo_root / path).resolve()
