"""Install and remove the managed hookgate block in git hook scripts."""

from __future__ import annotations

import difflib
import os
import stat
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from hookgate.exec import git_path
from hookgate.types import HookEvent

MARKER_BEGIN = "# >>> HOOKGATE BEGIN >>>"
MARKER_END = "# <<< HOOKGATE END <<<"
SHEBANG = "#!/bin/sh\n"


@dataclass(frozen=True)
class HookWriteResult:
    event: HookEvent
    path: Path
    changed: bool
    diff: str


def hooks_dir(repo_root: Path) -> Path:
    """Resolve the hooks directory git will dispatch from."""
    return git_path(repo_root, "hooks")


def render_hook_block(event: HookEvent, executable: str = "hookgate") -> str:
    lines = [
        MARKER_BEGIN,
        f'{executable} {event.value} "$@" || exit $?',
        MARKER_END,
        "",
    ]
    return "\n".join(lines)


def _locate_block(lines: list[str]) -> tuple[int, int] | None:
    """Return the first and last line index of the managed block, if present."""
    begins = [i for i, line in enumerate(lines) if line.strip() == MARKER_BEGIN]
    ends = [i for i, line in enumerate(lines) if line.strip() == MARKER_END]
    if not begins and not ends:
        return None
    if len(begins) != 1 or len(ends) != 1 or ends[0] < begins[0]:
        raise ValueError(
            f"Malformed HOOKGATE block: expected one {MARKER_BEGIN!r} line followed by one {MARKER_END!r} line"
        )
    return begins[0], ends[0]


def apply_hook_block(contents: str, *, block: str, remove: bool) -> tuple[str, bool]:
    """Insert, replace or remove the managed block; return (new contents, changed).

    A new block goes directly after the shebang so it runs before any
    existing hook body, which may end with an unconditional ``exit``.
    """
    lines = contents.splitlines(keepends=True)
    span = _locate_block(lines)

    if span is not None:
        first, last = span
        replacement = [] if remove else [block]
        new_contents = "".join([*lines[:first], *replacement, *lines[last + 1 :]])
        return new_contents, new_contents != contents

    if remove:
        return contents, False
    if not lines:
        return f"{SHEBANG}{block}", True
    if lines[0].startswith("#!"):
        head = lines[0] if lines[0].endswith("\n") else f"{lines[0]}\n"
        new_contents = "".join([head, block, *lines[1:]])
    else:
        new_contents = "".join([block, *lines])
    return new_contents, True


def _atomic_write(path: Path, content: str) -> None:
    """Replace path via a temp file, keeping the existing hook's permission bits."""
    mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else 0o755
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            newline="\n",
            dir=path.parent,
            delete=False,
            prefix=f".{path.name}.",
            suffix=".hookgate.tmp",
        ) as tmp_file:
            tmp_path = Path(tmp_file.name)
            tmp_file.write(content)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except Exception:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def write_hook(
    path: Path,
    event: HookEvent,
    *,
    remove: bool = False,
    executable: str = "hookgate",
    dry_run: bool = False,
) -> HookWriteResult:
    """Install (or remove) the managed block in one hook script."""
    old = path.read_text(encoding="utf-8") if path.exists() else ""
    new, changed = apply_hook_block(old, block=render_hook_block(event, executable), remove=remove)
    diff = "".join(
        difflib.unified_diff(
            old.splitlines(keepends=True),
            new.splitlines(keepends=True),
            fromfile=str(path),
            tofile=str(path),
        )
    )
    if changed and not dry_run:
        _atomic_write(path, new)
    if not remove and not dry_run and path.exists():
        _make_executable(path)
    return HookWriteResult(event=event, path=path, changed=changed, diff=diff)


def install_hooks(
    repo_root: Path,
    events: Iterable[HookEvent] = (HookEvent.PRE_COMMIT, HookEvent.PRE_PUSH),
    *,
    remove: bool = False,
    executable: str = "hookgate",
    dry_run: bool = False,
) -> list[HookWriteResult]:
    """Install or remove hookgate shims for the given events."""
    directory = hooks_dir(repo_root)
    return [
        write_hook(directory / event.value, event, remove=remove, executable=executable, dry_run=dry_run)
        for event in events
    ]
