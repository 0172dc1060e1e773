"""Error kinds raised by the gate pipeline."""

from __future__ import annotations


class GateError(RuntimeError):
    """Base class for hookgate failures."""

    exit_code = 1


class ConfigError(GateError):
    """Gate configuration is missing pieces or fails schema validation."""

    exit_code = 2


class QueryError(GateError):
    """The change set could not be determined from git."""


class ExternalProcessError(GateError):
    """The external command could not be launched at all."""

    exit_code = 127


class ArtifactParseError(GateError):
    """A result artifact is malformed or in an unknown format."""


class GateInterrupted(GateError):
    """The developer interrupted a running check."""

    exit_code = 130


class CheckFailure(GateError):
    """The external command ran and exited non-zero."""

    kind = "check"

    def __init__(
        self,
        *,
        stage: str,
        policy: str,
        exit_code: int,
        failed_tests: list[str] | None = None,
        timed_out: bool = False,
    ):
        self.stage = stage
        self.policy = policy
        self.exit_code = exit_code
        self.failed_tests = list(failed_tests or [])
        self.timed_out = timed_out
        reason = "timed out" if timed_out else f"exited with code {exit_code}"
        message = f"{stage}: {self.kind} policy '{policy}' {reason}"
        if self.failed_tests:
            message += f" ({len(self.failed_tests)} failing test(s))"
        super().__init__(message)


class CompileFailure(CheckFailure):
    """A compile policy failed."""

    kind = "compile"


class TestFailure(CheckFailure):
    """A test policy failed."""

    __test__ = False  # not a pytest test class

    kind = "test"
