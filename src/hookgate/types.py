"""Types shared across the hookgate pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

ZERO_SHA = "0" * 40


class HookEvent(str, Enum):
    """Git lifecycle events hookgate can gate."""

    PRE_COMMIT = "pre-commit"
    PRE_PUSH = "pre-push"


class ChangeStatus(str, Enum):
    """Change classification derived from git's --name-status letters."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"
    COPIED = "copied"
    TYPE_CHANGED = "type_changed"
    UNMERGED = "unmerged"
    UNKNOWN = "unknown"

    @classmethod
    def from_letter(cls, letter: str) -> "ChangeStatus":
        return _STATUS_LETTERS.get(letter[:1].upper(), cls.UNKNOWN)


_STATUS_LETTERS = {
    "A": ChangeStatus.ADDED,
    "M": ChangeStatus.MODIFIED,
    "D": ChangeStatus.DELETED,
    "R": ChangeStatus.RENAMED,
    "C": ChangeStatus.COPIED,
    "T": ChangeStatus.TYPE_CHANGED,
    "U": ChangeStatus.UNMERGED,
}


@dataclass(frozen=True)
class ChangeEntry:
    """One file affected by the pending commit or push."""

    path: str
    status: ChangeStatus
    old_path: str | None = None


@dataclass(frozen=True)
class RefUpdate:
    """One ref line git feeds to the pre-push hook on stdin."""

    local_ref: str
    local_sha: str
    remote_ref: str
    remote_sha: str

    @property
    def is_delete(self) -> bool:
        return self.local_sha == ZERO_SHA

    @property
    def is_new_remote_ref(self) -> bool:
        return self.remote_sha == ZERO_SHA


@dataclass(frozen=True)
class RunResult:
    """Outcome of one external build/test command."""

    argv: tuple[str, ...]
    cwd: Path
    returncode: int
    output: str
    duration_seconds: float
    timed_out: bool = False
    artifact_paths: tuple[Path, ...] = ()

    @property
    def failed(self) -> bool:
        return self.timed_out or self.returncode != 0


class Outcome(str, Enum):
    """Normalized per-test outcome."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class TestOutcome:
    """A single named test result read from a result artifact."""

    __test__ = False  # not a pytest test class

    name: str
    outcome: Outcome
    source: Path | None = None


@dataclass
class ResultReport:
    """Failed tests and parse problems gathered from result artifacts."""

    artifacts: list[Path] = field(default_factory=list)
    failed: list[TestOutcome] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)
