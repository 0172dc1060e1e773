"""External build/test command execution with live output."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

from hookgate.errors import ExternalProcessError, GateInterrupted
from hookgate.results import find_artifacts
from hookgate.types import RunResult

logger = logging.getLogger(__name__)

# Filesystem mtime resolution can be coarse; artifacts this close to the start still count.
ARTIFACT_MTIME_SLACK = 1.0
INTERRUPT_GRACE_SECONDS = 10.0


def _echo_stdout(line: str) -> None:
    sys.stdout.write(line)
    sys.stdout.flush()


def _kill_tree(proc: subprocess.Popen[str]) -> None:
    """Kill the child and everything it spawned.

    Build wrappers (build.sh, build.ps1) start the real toolchain as a
    grandchild that shares the output pipe, so killing only the direct child
    leaves the pipe open.
    """
    if os.name == "nt":
        try:
            subprocess.run(
                ["taskkill", "/F", "/T", "/PID", str(proc.pid)],
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            logger.debug("taskkill unavailable (%s); killing direct child only", exc)
        if proc.poll() is None:
            proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _interrupt(proc: subprocess.Popen[str]) -> None:
    """Forward the interrupt to the child's process group and reap it."""
    if os.name == "nt":
        _kill_tree(proc)
        proc.wait()
        return
    try:
        os.killpg(proc.pid, signal.SIGINT)
    except ProcessLookupError:
        pass
    try:
        proc.wait(timeout=INTERRUPT_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        _kill_tree(proc)
        proc.wait()


def run_external(
    argv: Sequence[str],
    *,
    cwd: Path,
    timeout: float | None = None,
    artifact_dir: Path | None = None,
    artifact_pattern: str | None = None,
    echo: Callable[[str], None] | None = None,
) -> RunResult:
    """Run a build/test command, streaming its output, and wait for it to exit.

    Args:
        argv: Executable and arguments
        cwd: Working directory for the child
        timeout: Optional ceiling in seconds; the child is killed when it expires
        artifact_dir: Where the command writes result artifacts (defaults to cwd)
        artifact_pattern: Glob for result artifacts; None skips artifact discovery
        echo: Sink for each output line (defaults to stdout)

    Returns:
        RunResult carrying the child's exit code unchanged

    Raises:
        ExternalProcessError: If the command cannot be launched
        GateInterrupted: If the developer interrupts the run
    """
    argv = list(argv)
    if not argv:
        raise ExternalProcessError("empty command")
    sink = echo or _echo_stdout
    rendered = " ".join(argv)

    logger.debug("launching %s in %s", rendered, cwd)
    started_wall = time.time()
    started = time.monotonic()
    try:
        proc = subprocess.Popen(
            argv,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            bufsize=1,
            # Own process group on POSIX so a timeout or interrupt reaches grandchildren.
            start_new_session=os.name != "nt",
        )
    except OSError as exc:
        raise ExternalProcessError(f"could not launch {rendered}: {exc}") from exc

    expired = threading.Event()
    timer: threading.Timer | None = None
    if timeout:

        def _expire() -> None:
            expired.set()
            _kill_tree(proc)

        timer = threading.Timer(timeout, _expire)
        timer.daemon = True
        timer.start()

    chunks: list[str] = []
    try:
        assert proc.stdout is not None
        for line in proc.stdout:
            chunks.append(line)
            sink(line)
        returncode = proc.wait()
    except KeyboardInterrupt as exc:
        _interrupt(proc)
        raise GateInterrupted(f"interrupted while running {rendered}") from exc
    finally:
        if timer is not None:
            timer.cancel()
        if proc.stdout is not None:
            proc.stdout.close()

    duration = time.monotonic() - started
    if expired.is_set():
        logger.warning("%s exceeded %.0fs and was killed", rendered, timeout)

    artifacts: list[Path] = []
    if artifact_pattern:
        artifacts = find_artifacts(
            artifact_dir or cwd,
            artifact_pattern,
            since=started_wall - ARTIFACT_MTIME_SLACK,
        )

    logger.debug("%s exited %d after %.1fs", rendered, returncode, duration)
    return RunResult(
        argv=tuple(argv),
        cwd=Path(cwd).resolve(),
        returncode=returncode,
        output="".join(chunks),
        duration_seconds=duration,
        timed_out=expired.is_set(),
        artifact_paths=tuple(artifacts),
    )
