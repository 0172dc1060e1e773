"""End-to-end tests for the hookgate CLI against real git repositories."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from hookgate import __version__
from hookgate.cli import cli
from hookgate.types import ZERO_SHA

RUNNER = CliRunner()

BUILD_SCRIPT = '''
import pathlib
import sys

TRX = """<TestRun xmlns="http://microsoft.com/schemas/VisualStudio/TeamTest/2010">
  <Results>
    <UnitTestResult testName="Orders.Total_includes_tax" outcome="Failed" />
    <UnitTestResult testName="Orders.Total_is_positive" outcome="Passed" />
  </Results>
</TestRun>
"""

target = sys.argv[sys.argv.index("--target") + 1]
print(f"build target {target}", flush=True)
if target == "test":
    results = pathlib.Path("TestResults")
    results.mkdir(exist_ok=True)
    (results / "run.trx").write_text(TRX, encoding="utf-8")
code_file = pathlib.Path("exit_code.txt")
sys.exit(int(code_file.read_text()) if code_file.exists() else 0)
'''


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return result.stdout.strip()


def _configure(repo: Path, exit_code: int) -> None:
    (repo / "build.py").write_text(BUILD_SCRIPT, encoding="utf-8")
    (repo / "exit_code.txt").write_text(str(exit_code), encoding="utf-8")
    config = {
        "defaults": {
            "command": [sys.executable, "build.py"],
            "target_flag": "--target",
            "artifact_pattern": "TestResults/*.trx",
        },
        "policies": [
            {"name": "compile", "events": ["pre-commit"], "patterns": [".src", ".proj"], "target": "compile"},
            {"name": "test", "events": ["pre-push"], "patterns": [".src", ".proj"], "target": "test"},
        ],
    }
    config_dir = repo / ".hookgate"
    config_dir.mkdir(exist_ok=True)
    (config_dir / "config.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")


@pytest.fixture(autouse=True)
def _no_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HOOKGATE_CONFIG", raising=False)


def test_pre_commit_rejects_failing_compile(git_repo: Path) -> None:
    _configure(git_repo, exit_code=1)
    (git_repo / "Foo.src").write_text("source\n", encoding="utf-8")
    (git_repo / "Foo.proj").write_text("project\n", encoding="utf-8")
    _git(git_repo, "add", "Foo.src", "Foo.proj")

    result = RUNNER.invoke(cli, ["pre-commit", "--repo", str(git_repo)])

    assert result.exit_code == 1
    assert "build target compile" in result.output
    assert "COMMIT REJECTED" in result.output
    assert "exit code: 1" in result.output


def test_pre_commit_accepts_passing_compile(git_repo: Path) -> None:
    _configure(git_repo, exit_code=0)
    (git_repo / "Foo.src").write_text("source\n", encoding="utf-8")
    _git(git_repo, "add", "Foo.src")

    result = RUNNER.invoke(cli, ["pre-commit", "--repo", str(git_repo)])

    assert result.exit_code == 0
    assert "build target compile" in result.output
    assert "passed" in result.output


def test_pre_commit_skips_unrelated_changes(git_repo: Path) -> None:
    _configure(git_repo, exit_code=1)
    (git_repo / "Readme.md").write_text("docs\n", encoding="utf-8")
    _git(git_repo, "add", "Readme.md")

    result = RUNNER.invoke(cli, ["pre-commit", "--repo", str(git_repo)])

    assert result.exit_code == 0
    assert "build target" not in result.output
    assert "skipped" in result.output


def test_pre_push_rejects_and_lists_failing_tests(repo_with_origin: Path) -> None:
    _configure(repo_with_origin, exit_code=1)
    (repo_with_origin / "Foo.src").write_text("source\n", encoding="utf-8")
    _git(repo_with_origin, "add", "Foo.src")
    _git(repo_with_origin, "commit", "-m", "add foo")

    result = RUNNER.invoke(cli, ["pre-push", "origin", "url", "--repo", str(repo_with_origin)], input="")

    assert result.exit_code == 1
    assert "PUSH REJECTED" in result.output
    assert "  - Orders.Total_includes_tax" in result.output
    assert "Orders.Total_is_positive" not in result.output


def test_pre_push_uses_stdin_ref_lines(repo_with_origin: Path) -> None:
    _configure(repo_with_origin, exit_code=1)
    remote_sha = _git(repo_with_origin, "rev-parse", "HEAD")
    (repo_with_origin / "Foo.proj").write_text("project\n", encoding="utf-8")
    _git(repo_with_origin, "add", "Foo.proj")
    _git(repo_with_origin, "commit", "-m", "add proj")
    local_sha = _git(repo_with_origin, "rev-parse", "HEAD")

    stdin = f"refs/heads/main {local_sha} refs/heads/main {remote_sha}\n"
    result = RUNNER.invoke(cli, ["pre-push", "origin", "url", "--repo", str(repo_with_origin)], input=stdin)

    assert result.exit_code == 1
    assert "build target test" in result.output


def test_pre_push_new_branch_is_accepted(git_repo: Path) -> None:
    _configure(git_repo, exit_code=1)
    (git_repo / "Foo.src").write_text("source\n", encoding="utf-8")
    _git(git_repo, "add", "Foo.src")
    _git(git_repo, "commit", "-m", "add foo")
    local_sha = _git(git_repo, "rev-parse", "HEAD")

    stdin = f"refs/heads/main {local_sha} refs/heads/main {ZERO_SHA}\n"
    result = RUNNER.invoke(cli, ["pre-push", "origin", "url", "--repo", str(git_repo)], input=stdin)

    assert result.exit_code == 0
    assert "build target" not in result.output


def test_invalid_config_aborts_with_exit_2(git_repo: Path) -> None:
    config_dir = git_repo / ".hookgate"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("policies: [{name: x}]\n", encoding="utf-8")

    result = RUNNER.invoke(cli, ["pre-commit", "--repo", str(git_repo)])

    assert result.exit_code == 2
    assert "Invalid hookgate configuration" in result.output


def test_missing_build_tool_rejects(git_repo: Path) -> None:
    config_dir = git_repo / ".hookgate"
    config_dir.mkdir()
    config = {
        "policies": [
            {"name": "compile", "events": ["pre-commit"], "patterns": [".src"], "command": ["./no-such-build-tool"]}
        ]
    }
    (config_dir / "config.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")
    (git_repo / "Foo.src").write_text("source\n", encoding="utf-8")
    _git(git_repo, "add", "Foo.src")

    result = RUNNER.invoke(cli, ["pre-commit", "--repo", str(git_repo)])

    assert result.exit_code == 127
    assert "could not launch" in result.output
    assert "exit code: 127" in result.output


def test_report_command_lists_failures(tmp_path: Path) -> None:
    results = tmp_path / "TestResults"
    results.mkdir()
    (results / "a.trx").write_text(
        '<TestRun><Results><UnitTestResult testName="A.fails" outcome="Failed" /></Results></TestRun>',
        encoding="utf-8",
    )

    result = RUNNER.invoke(cli, ["report", "--dir", str(tmp_path)])

    assert result.exit_code == 1
    assert "  - A.fails" in result.output


def test_report_command_without_artifacts(tmp_path: Path) -> None:
    result = RUNNER.invoke(cli, ["report", "--dir", str(tmp_path)])
    assert result.exit_code == 0
    assert "No result artifacts" in result.output


def test_install_and_uninstall_commands(git_repo: Path) -> None:
    result = RUNNER.invoke(cli, ["install", "--repo", str(git_repo), "--event", "pre-commit"])
    assert result.exit_code == 0
    assert "pre-commit=" in result.output
    assert "(updated)" in result.output

    result = RUNNER.invoke(cli, ["uninstall", "--repo", str(git_repo), "--event", "pre-commit"])
    assert result.exit_code == 0
    assert "(updated)" in result.output


def test_version_command() -> None:
    result = RUNNER.invoke(cli, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output
