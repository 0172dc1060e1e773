"""hookgate CLI - git lifecycle hook entry points."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from hookgate import __version__
from hookgate.changeset import collect_changes, parse_ref_updates
from hookgate.config import load_gate_config
from hookgate.errors import ConfigError, QueryError
from hookgate.exec import resolve_repo_root
from hookgate.gate import evaluate_gate
from hookgate.install import install_hooks
from hookgate.results import DEFAULT_ARTIFACT_PATTERN, collect_failures, print_failures
from hookgate.types import HookEvent, RefUpdate
from hookgate.ui import console, render_accepted, render_plan, render_rejected

logger = logging.getLogger("hookgate")

cli = typer.Typer(
    name="hookgate",
    help="hookgate - build/test gate for git pre-commit and pre-push hooks",
    no_args_is_help=True,
)

REPO_OPTION_HELP = "Repository path (defaults to current working directory)."
CONFIG_OPTION_HELP = "Config file (defaults to .hookgate/config.toml or .yaml)."


def _configure_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else os.getenv("HOOKGATE_LOG_LEVEL", "WARNING").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_time=False, show_path=False)],
        force=True,
    )


def _run_gate(
    event: HookEvent,
    *,
    repo: Path | None,
    config: Path | None,
    upstream: str | None = None,
    ref_updates: list[RefUpdate] | None = None,
) -> None:
    try:
        repo_root = resolve_repo_root(repo)
        gate_config = load_gate_config(repo_root, config)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(exc.exit_code) from exc
    except RuntimeError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    if gate_config.source is not None:
        logger.debug("using config %s", gate_config.source)

    changes = collect_changes(event, repo_root=repo_root, upstream=upstream, ref_updates=ref_updates or ())
    verdict = evaluate_gate(
        event,
        changes,
        gate_config.for_event(event),
        workdir=repo_root,
        case_insensitive=gate_config.case_insensitive,
        announce=lambda policies: render_plan(event, policies),
    )

    if verdict.accepted:
        render_accepted(verdict)
        return
    render_rejected(verdict)
    raise typer.Exit(verdict.exit_code)


@cli.command("pre-commit")
def pre_commit(
    repo: Path | None = typer.Option(None, "--repo", help=REPO_OPTION_HELP),
    config: Path | None = typer.Option(None, "--config", help=CONFIG_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr."),
) -> None:
    """Gate a commit on the staged changes."""
    _configure_logging(verbose)
    _run_gate(HookEvent.PRE_COMMIT, repo=repo, config=config)


@cli.command("pre-push")
def pre_push(
    remote: str | None = typer.Argument(None, help="Remote name, as passed by git."),
    url: str | None = typer.Argument(None, help="Remote URL, as passed by git."),
    upstream: str | None = typer.Option(None, "--upstream", help="Diff against this ref instead of @{upstream}."),
    repo: Path | None = typer.Option(None, "--repo", help=REPO_OPTION_HELP),
    config: Path | None = typer.Option(None, "--config", help=CONFIG_OPTION_HELP),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging on stderr."),
) -> None:
    """Gate a push on the outgoing changes (ref lines are read from stdin)."""
    _configure_logging(verbose)
    logger.debug("pre-push to %s (%s)", remote or "?", url or "?")

    ref_updates: list[RefUpdate] = []
    if upstream is None and not sys.stdin.isatty():
        try:
            ref_updates = parse_ref_updates(sys.stdin.read())
        except QueryError as exc:
            logger.warning("ignoring pre-push stdin: %s", exc)
    _run_gate(HookEvent.PRE_PUSH, repo=repo, config=config, upstream=upstream, ref_updates=ref_updates)


@cli.command("report")
def report(
    directory: Path = typer.Option(Path("."), "--dir", help="Directory to search for result artifacts."),
    pattern: str = typer.Option(DEFAULT_ARTIFACT_PATTERN, "--pattern", help="Result artifact glob."),
) -> None:
    """List failing tests from existing result artifacts."""
    result = collect_failures(directory, pattern)
    if not result.artifacts:
        console.print(f"No result artifacts matching {pattern} under {directory}", style="dim")
        return
    print_failures(result, console)
    if result.failed:
        raise typer.Exit(1)
    console.print(f"No failing tests in {len(result.artifacts)} artifact(s)", style="green")


@cli.command("install")
def install(
    event: list[HookEvent] = typer.Option(
        [HookEvent.PRE_COMMIT, HookEvent.PRE_PUSH],
        "--event",
        help="Hook to install (repeatable).",
    ),
    repo: Path | None = typer.Option(None, "--repo", help=REPO_OPTION_HELP),
    executable: str = typer.Option("hookgate", "--executable", help="Command the hook shim invokes."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the diff without writing."),
) -> None:
    """Add the hookgate block to git hook scripts."""
    _write_hooks(event, repo=repo, executable=executable, dry_run=dry_run, remove=False)


@cli.command("uninstall")
def uninstall(
    event: list[HookEvent] = typer.Option(
        [HookEvent.PRE_COMMIT, HookEvent.PRE_PUSH],
        "--event",
        help="Hook to clean up (repeatable).",
    ),
    repo: Path | None = typer.Option(None, "--repo", help=REPO_OPTION_HELP),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the diff without writing."),
) -> None:
    """Remove the hookgate block from git hook scripts."""
    _write_hooks(event, repo=repo, executable="hookgate", dry_run=dry_run, remove=True)


def _write_hooks(
    events: list[HookEvent],
    *,
    repo: Path | None,
    executable: str,
    dry_run: bool,
    remove: bool,
) -> None:
    try:
        repo_root = resolve_repo_root(repo)
        results = install_hooks(repo_root, events, remove=remove, executable=executable, dry_run=dry_run)
    except (RuntimeError, ValueError, OSError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(1) from exc

    for result in results:
        if dry_run and result.diff:
            typer.echo(result.diff)
        state = "updated" if result.changed else "unchanged"
        typer.echo(f"{result.event.value}={result.path} ({state})")


@cli.command("version")
def version() -> None:
    """Print the hookgate version."""
    typer.echo(__version__)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
