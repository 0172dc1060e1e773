"""Change-set queries for the pending commit or push."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from hookgate.errors import QueryError
from hookgate.exec import ExecError, run_git
from hookgate.types import ChangeEntry, ChangeStatus, HookEvent, RefUpdate

logger = logging.getLogger(__name__)

DIFF_ARGS = ["diff", "--name-status", "-z", "-M"]


def parse_name_status(output: str) -> list[ChangeEntry]:
    """Parse NUL-separated ``git diff --name-status -z`` output.

    Each record is a status token followed by one path, or by two paths
    (source, destination) for renames and copies.
    """
    tokens = output.rstrip("\0").split("\0")
    entries: list[ChangeEntry] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if not token:
            i += 1
            continue
        status = ChangeStatus.from_letter(token)
        if status in (ChangeStatus.RENAMED, ChangeStatus.COPIED):
            if i + 2 >= len(tokens):
                raise QueryError(f"truncated rename record in diff output: {token!r}")
            entries.append(ChangeEntry(path=tokens[i + 2], status=status, old_path=tokens[i + 1]))
            i += 3
        else:
            if i + 1 >= len(tokens):
                raise QueryError(f"truncated record in diff output: {token!r}")
            entries.append(ChangeEntry(path=tokens[i + 1], status=status))
            i += 2
    return entries


def parse_ref_updates(text: str) -> list[RefUpdate]:
    """Parse the ``<local ref> <local sha> <remote ref> <remote sha>`` lines of pre-push stdin."""
    updates: list[RefUpdate] = []
    for line in text.splitlines():
        parts = line.split()
        if not parts:
            continue
        if len(parts) != 4:
            raise QueryError(f"malformed pre-push ref line: {line!r}")
        updates.append(RefUpdate(*parts))
    return updates


def _git_diff(args: list[str], repo_root: Path) -> list[ChangeEntry]:
    try:
        out = run_git([*DIFF_ARGS, *args], repo_root=repo_root)
    except (ExecError, OSError) as exc:
        raise QueryError(f"git diff failed: {exc}") from exc
    return parse_name_status(out.stdout)


def resolve_upstream(repo_root: Path) -> str:
    """Return the upstream tracking ref of the current branch."""
    try:
        out = run_git(
            ["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"],
            repo_root=repo_root,
        )
    except (ExecError, OSError) as exc:
        raise QueryError(f"no upstream configured for the current branch: {exc}") from exc
    upstream = out.stdout.strip()
    if not upstream:
        raise QueryError("no upstream configured for the current branch")
    return upstream


def _dedupe(entries: Iterable[ChangeEntry]) -> list[ChangeEntry]:
    seen: set[str] = set()
    unique: list[ChangeEntry] = []
    for entry in entries:
        if entry.path in seen:
            continue
        seen.add(entry.path)
        unique.append(entry)
    return unique


def inspect_changes(
    event: HookEvent,
    *,
    repo_root: Path,
    upstream: str | None = None,
    ref_updates: Iterable[RefUpdate] = (),
) -> list[ChangeEntry]:
    """Return the files affected by the pending lifecycle event.

    Args:
        event: pre-commit (staged changes) or pre-push (outgoing commits)
        repo_root: Repository root to query
        upstream: Explicit upstream ref for pre-push; resolved from git if omitted
        ref_updates: Ref lines from pre-push stdin; take precedence over upstream

    Raises:
        QueryError: If git cannot describe the change set
    """
    if event is HookEvent.PRE_COMMIT:
        return _git_diff(["--cached"], repo_root)

    updates = list(ref_updates)
    if updates:
        entries: list[ChangeEntry] = []
        diffed = 0
        new_refs: list[str] = []
        for update in updates:
            if update.is_delete:
                logger.debug("skipping deleted ref %s", update.remote_ref)
                continue
            if update.is_new_remote_ref:
                logger.warning("%s does not exist on the remote yet; not checked", update.remote_ref)
                new_refs.append(update.remote_ref)
                continue
            entries.extend(_git_diff([update.remote_sha, update.local_sha], repo_root))
            diffed += 1
        if new_refs and not diffed:
            raise QueryError(
                f"{', '.join(new_refs)} does not exist on the remote yet; no base to diff against"
            )
        return _dedupe(entries)

    base = upstream or resolve_upstream(repo_root)
    return _git_diff([base, "HEAD"], repo_root)


def collect_changes(
    event: HookEvent,
    *,
    repo_root: Path,
    upstream: str | None = None,
    ref_updates: Iterable[RefUpdate] = (),
) -> list[ChangeEntry]:
    """Like inspect_changes, but an unanswerable query counts as no changes."""
    try:
        entries = inspect_changes(event, repo_root=repo_root, upstream=upstream, ref_updates=ref_updates)
    except QueryError as exc:
        logger.warning("treating change set as empty: %s", exc)
        return []
    logger.debug("%s change set: %d file(s)", event.value, len(entries))
    return entries
