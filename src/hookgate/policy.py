"""Policies and change-set matching."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Literal

from hookgate.types import ChangeEntry, ChangeStatus, HookEvent

PolicyKind = Literal["compile", "test"]

GLOB_CHARS = frozenset("*?[")

DEFAULT_STATUSES: frozenset[ChangeStatus] = frozenset(
    {
        ChangeStatus.ADDED,
        ChangeStatus.MODIFIED,
        ChangeStatus.DELETED,
        ChangeStatus.RENAMED,
        ChangeStatus.COPIED,
        ChangeStatus.TYPE_CHANGED,
    }
)


def default_case_insensitive() -> bool:
    """Whether the default filesystem on this platform ignores case."""
    return sys.platform in ("win32", "darwin")


@dataclass(frozen=True)
class Policy:
    """A rule binding a class of changed files to a verification command."""

    name: str
    command: tuple[str, ...]
    patterns: tuple[str, ...]
    events: frozenset[HookEvent] = frozenset({HookEvent.PRE_COMMIT})
    statuses: frozenset[ChangeStatus] = field(default=DEFAULT_STATUSES)
    kind: PolicyKind = "compile"
    timeout_seconds: float | None = None
    artifact_dir: Path | None = None
    artifact_pattern: str | None = None

    def matches(self, entry: ChangeEntry, case_insensitive: bool = False) -> bool:
        """True when the entry's status counts and its path hits any pattern."""
        if entry.status not in self.statuses:
            return False
        return any(path_matches(entry.path, pattern, case_insensitive) for pattern in self.patterns)


def path_matches(path: str, pattern: str, case_insensitive: bool = False) -> bool:
    """Match a repo-relative path against a suffix or an fnmatch glob."""
    if case_insensitive:
        path = path.lower()
        pattern = pattern.lower()
    if GLOB_CHARS.intersection(pattern):
        return fnmatchcase(path, pattern)
    return path.endswith(pattern)


def match_policies(
    entries: Iterable[ChangeEntry],
    policies: Sequence[Policy],
    *,
    event: HookEvent | None = None,
    case_insensitive: bool | None = None,
) -> list[Policy]:
    """Return the policies that apply to at least one changed file, in config order."""
    if case_insensitive is None:
        case_insensitive = default_case_insensitive()
    entries = list(entries)
    applicable: list[Policy] = []
    for policy in policies:
        if event is not None and event not in policy.events:
            continue
        if any(policy.matches(entry, case_insensitive) for entry in entries):
            applicable.append(policy)
    return applicable
