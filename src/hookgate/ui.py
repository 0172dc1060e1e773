"""Console rendering for gate outcomes."""

from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console, Group
from rich.panel import Panel
from rich.rule import Rule
from rich.text import Text

from hookgate.errors import CheckFailure
from hookgate.gate import GateVerdict
from hookgate.policy import Policy
from hookgate.results import print_test_names
from hookgate.types import HookEvent

console = Console()

BANNER_TITLES = {
    HookEvent.PRE_COMMIT: "COMMIT REJECTED",
    HookEvent.PRE_PUSH: "PUSH REJECTED",
}


def render_plan(event: HookEvent, policies: Sequence[Policy]) -> None:
    names = ", ".join(p.name for p in policies)
    console.print(Text(f"hookgate {event.value}: running {names}", style="bold bright_cyan"))


def render_accepted(verdict: GateVerdict) -> None:
    if verdict.applicable:
        console.print(Text(f"hookgate {verdict.event.value}: passed", style="bold green"))
    else:
        console.print(Text(f"hookgate {verdict.event.value}: no matching changes, skipped", style="dim"))


def _rejection_details(verdict: GateVerdict) -> Group:
    error = verdict.error
    lines = [Text(f"stage: {verdict.event.value}")]
    if isinstance(error, CheckFailure):
        lines.append(Text(f"policy: {error.policy} ({error.kind})"))
        lines.append(Text(f"result: {'timed out' if error.timed_out else 'failed'}"))
    elif error is not None:
        lines.append(Text(f"result: {error}"))
    lines.append(Text(f"exit code: {verdict.exit_code}"))
    return Group(*lines)


def render_rejected(verdict: GateVerdict) -> None:
    """Print the failure banner, the failing tests and any notes."""
    title = BANNER_TITLES.get(verdict.event, "REJECTED")
    console.print()
    console.print(Rule(Text(title, style="bold bright_white on red"), style="red"))
    console.print(Panel(_rejection_details(verdict), border_style="red", style="bold red", expand=False))

    if verdict.failed_tests:
        console.print(Text(f"failing tests ({len(verdict.failed_tests)}):", style="bold yellow"))
        print_test_names(verdict.failed_tests, console)
    for note in verdict.notes:
        console.print(Text(note, style="yellow"))

    console.print(Rule(style="red"))
