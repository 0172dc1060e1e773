"""Accept/reject decision for a git lifecycle event."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from hookgate.errors import (
    CheckFailure,
    CompileFailure,
    ExternalProcessError,
    GateError,
    GateInterrupted,
    TestFailure,
)
from hookgate.policy import Policy, match_policies
from hookgate.results import PARSE_FAILURE_NOTE, collect_failures
from hookgate.runner import run_external
from hookgate.types import ChangeEntry, HookEvent, ResultReport, RunResult

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    """Position in the idle, matching, running, reporting and verdict progression."""

    IDLE = "idle"
    MATCHING = "matching"
    RUNNING = "running"
    REPORTING = "reporting"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


ALLOWED_TRANSITIONS: dict[GateState, frozenset[GateState]] = {
    GateState.IDLE: frozenset({GateState.MATCHING}),
    GateState.MATCHING: frozenset({GateState.ACCEPTED, GateState.RUNNING}),
    GateState.RUNNING: frozenset({GateState.ACCEPTED, GateState.REPORTING}),
    GateState.REPORTING: frozenset({GateState.REJECTED}),
    GateState.ACCEPTED: frozenset(),
    GateState.REJECTED: frozenset(),
}

Runner = Callable[..., RunResult]
Reporter = Callable[..., ResultReport]


@dataclass
class GateVerdict:
    """Everything the gate decided for one invocation."""

    event: HookEvent
    state: GateState = GateState.IDLE
    history: list[GateState] = field(default_factory=lambda: [GateState.IDLE])
    applicable: list[str] = field(default_factory=list)
    runs: list[RunResult] = field(default_factory=list)
    failed_tests: list[str] = field(default_factory=list)
    error: GateError | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.state is GateState.ACCEPTED

    @property
    def exit_code(self) -> int:
        if self.state is GateState.ACCEPTED:
            return 0
        code = self.error.exit_code if self.error is not None else 1
        return code if isinstance(code, int) and code > 0 else 1


def _failure_for(policy: Policy, event: HookEvent, result: RunResult, failed_tests: list[str]) -> CheckFailure:
    cls = TestFailure if policy.kind == "test" else CompileFailure
    return cls(
        stage=event.value,
        policy=policy.name,
        exit_code=result.returncode,
        failed_tests=failed_tests,
        timed_out=result.timed_out,
    )


class Gate:
    """Linear state machine: match policies, run them, report, decide."""

    def __init__(
        self,
        event: HookEvent,
        policies: Sequence[Policy],
        *,
        workdir: Path,
        case_insensitive: bool | None = None,
        runner: Runner = run_external,
        reporter: Reporter = collect_failures,
        echo: Callable[[str], None] | None = None,
        announce: Callable[[list[Policy]], None] | None = None,
    ):
        self.event = event
        self.policies = list(policies)
        self.workdir = workdir
        self.case_insensitive = case_insensitive
        self.runner = runner
        self.reporter = reporter
        self.echo = echo
        self.announce = announce
        self.verdict = GateVerdict(event=event)

    @property
    def state(self) -> GateState:
        return self.verdict.state

    def _transition(self, new: GateState) -> None:
        if new not in ALLOWED_TRANSITIONS[self.verdict.state]:
            raise RuntimeError(f"illegal gate transition {self.verdict.state.value} -> {new.value}")
        logger.debug("gate %s -> %s", self.verdict.state.value, new.value)
        self.verdict.state = new
        self.verdict.history.append(new)

    def _reject(self, error: GateError) -> GateVerdict:
        self.verdict.error = error
        self._transition(GateState.REJECTED)
        return self.verdict

    def evaluate(self, changes: Iterable[ChangeEntry]) -> GateVerdict:
        """Decide the event. Must be called once per Gate."""
        self._transition(GateState.MATCHING)
        applicable = match_policies(
            changes,
            self.policies,
            event=self.event,
            case_insensitive=self.case_insensitive,
        )
        self.verdict.applicable = [p.name for p in applicable]
        if not applicable:
            logger.debug("no policy applies to this %s", self.event.value)
            self._transition(GateState.ACCEPTED)
            return self.verdict

        self._transition(GateState.RUNNING)
        if self.announce is not None:
            self.announce(applicable)
        for policy in applicable:
            try:
                result = self.runner(
                    policy.command,
                    cwd=self.workdir,
                    timeout=policy.timeout_seconds,
                    artifact_dir=policy.artifact_dir,
                    artifact_pattern=policy.artifact_pattern,
                    echo=self.echo,
                )
            except (ExternalProcessError, GateInterrupted) as exc:
                self._transition(GateState.REPORTING)
                return self._reject(exc)

            self.verdict.runs.append(result)
            if not result.failed:
                continue

            self._transition(GateState.REPORTING)
            failed_tests = self._report(policy, result)
            return self._reject(_failure_for(policy, self.event, result, failed_tests))

        self._transition(GateState.ACCEPTED)
        return self.verdict

    def _report(self, policy: Policy, result: RunResult) -> list[str]:
        if not policy.artifact_pattern:
            return []
        report = self.reporter(
            policy.artifact_dir or self.workdir,
            policy.artifact_pattern,
            paths=result.artifact_paths,
        )
        if report.parse_errors:
            self.verdict.notes.append(f"{PARSE_FAILURE_NOTE} ({len(report.parse_errors)} artifact(s))")
            self.verdict.notes.extend(report.parse_errors)
        self.verdict.failed_tests = [outcome.name for outcome in report.failed]
        return self.verdict.failed_tests


def evaluate_gate(
    event: HookEvent,
    changes: Iterable[ChangeEntry],
    policies: Sequence[Policy],
    *,
    workdir: Path,
    case_insensitive: bool | None = None,
    runner: Runner = run_external,
    reporter: Reporter = collect_failures,
    echo: Callable[[str], None] | None = None,
    announce: Callable[[list[Policy]], None] | None = None,
) -> GateVerdict:
    """Run the gate once and return its verdict."""
    gate = Gate(
        event,
        policies,
        workdir=workdir,
        case_insensitive=case_insensitive,
        runner=runner,
        reporter=reporter,
        echo=echo,
        announce=announce,
    )
    return gate.evaluate(changes)
