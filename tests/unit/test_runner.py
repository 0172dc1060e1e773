"""Tests for the external command runner."""

from __future__ import annotations

import os
import sys
import time
from pathlib import Path

import pytest

from hookgate.errors import ExternalProcessError, GateInterrupted
from hookgate.runner import run_external


def _py(code: str) -> list[str]:
    return [sys.executable, "-c", code]


def test_streams_output_and_propagates_zero_exit(tmp_path: Path) -> None:
    lines: list[str] = []
    result = run_external(_py("print('building'); print('done')"), cwd=tmp_path, echo=lines.append)

    assert result.returncode == 0
    assert not result.failed
    assert lines == ["building\n", "done\n"]
    assert result.output == "building\ndone\n"


def test_propagates_nonzero_exit_code_unchanged(tmp_path: Path) -> None:
    result = run_external(_py("import sys; sys.exit(3)"), cwd=tmp_path, echo=lambda _line: None)

    assert result.returncode == 3
    assert result.failed
    assert not result.timed_out


def test_stderr_is_merged_into_output(tmp_path: Path) -> None:
    code = "import sys; sys.stderr.write('error CS1002\\n'); sys.exit(1)"
    result = run_external(_py(code), cwd=tmp_path, echo=lambda _line: None)
    assert "error CS1002" in result.output


def test_runs_in_given_working_directory(tmp_path: Path) -> None:
    result = run_external(_py("import os; print(os.getcwd())"), cwd=tmp_path, echo=lambda _line: None)
    assert Path(result.output.strip()).resolve() == tmp_path.resolve()


def test_default_echo_writes_to_stdout(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    run_external(_py("print('visible progress')"), cwd=tmp_path)
    assert "visible progress" in capsys.readouterr().out


def test_missing_executable_is_external_process_error(tmp_path: Path) -> None:
    with pytest.raises(ExternalProcessError, match="could not launch"):
        run_external([str(tmp_path / "no-such-build-tool")], cwd=tmp_path)


def test_empty_command_is_external_process_error(tmp_path: Path) -> None:
    with pytest.raises(ExternalProcessError, match="empty command"):
        run_external([], cwd=tmp_path)


def test_timeout_kills_child_and_marks_failure(tmp_path: Path) -> None:
    started = time.monotonic()
    result = run_external(_py("import time; time.sleep(30)"), cwd=tmp_path, timeout=0.5, echo=lambda _line: None)

    assert result.timed_out
    assert result.failed
    assert time.monotonic() - started < 20


@pytest.mark.skipif(os.name == "nt", reason="uses sh as the build wrapper")
def test_timeout_kills_grandchildren_of_wrapper_script(tmp_path: Path) -> None:
    started = time.monotonic()
    result = run_external(["sh", "-c", "sleep 6; echo done"], cwd=tmp_path, timeout=0.5, echo=lambda _line: None)
    elapsed = time.monotonic() - started

    assert result.timed_out
    assert result.failed
    assert "done" not in result.output
    assert elapsed < 4


def test_collects_only_artifacts_written_during_run(tmp_path: Path) -> None:
    stale = tmp_path / "old.trx"
    stale.write_text("<TestRun/>", encoding="utf-8")
    past = time.time() - 3600
    os.utime(stale, (past, past))

    code = "open('TestResults.trx', 'w').write('<TestRun/>')"
    result = run_external(_py(code), cwd=tmp_path, artifact_pattern="**/*.trx", echo=lambda _line: None)

    assert [p.name for p in result.artifact_paths] == ["TestResults.trx"]


def test_no_artifact_pattern_means_no_artifacts(tmp_path: Path) -> None:
    result = run_external(_py("open('r.trx', 'w').write('x')"), cwd=tmp_path, echo=lambda _line: None)
    assert result.artifact_paths == ()


@pytest.mark.skipif(os.name == "nt", reason="SIGINT forwarding is POSIX-only")
def test_interrupt_is_forwarded_and_reported(tmp_path: Path) -> None:
    def _interrupting_echo(_line: str) -> None:
        raise KeyboardInterrupt

    code = "import time; print('started', flush=True); time.sleep(30)"
    started = time.monotonic()
    with pytest.raises(GateInterrupted, match="interrupted"):
        run_external(_py(code), cwd=tmp_path, echo=_interrupting_echo)
    assert time.monotonic() - started < 20
