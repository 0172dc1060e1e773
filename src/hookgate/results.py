"""Result-artifact discovery, parsing and failure reporting.

Two artifact formats are understood:

- Visual Studio TRX: ``UnitTestResult`` elements with ``testName`` and
  ``outcome`` attributes.
- JUnit XML: ``testcase`` elements; a ``failure`` or ``error`` child marks a
  failed test, a ``skipped`` child a skipped one.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from pathlib import Path

from rich.console import Console

from hookgate.errors import ArtifactParseError
from hookgate.types import Outcome, ResultReport, TestOutcome

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACT_PATTERN = "**/*.trx"
PARSE_FAILURE_NOTE = "unable to parse results"

TRX_FAILED = frozenset({"failed", "error", "timeout", "aborted"})
TRX_PASSED = frozenset({"passed", "passedbutrunaborted", "warning"})


def _local(tag: str) -> str:
    """Strip an ``{namespace}`` prefix from an element tag."""
    return tag.rsplit("}", 1)[-1]


def find_artifacts(directory: Path, pattern: str, since: float | None = None) -> list[Path]:
    """List result files under directory matching pattern, sorted by path.

    Args:
        directory: Root of the search
        pattern: Glob relative to directory (``**`` recurses)
        since: Only keep files modified at or after this epoch timestamp
    """
    if not directory.is_dir():
        return []
    found = []
    for path in sorted(directory.glob(pattern)):
        if not path.is_file():
            continue
        if since is not None and path.stat().st_mtime < since:
            continue
        found.append(path)
    return found


def _parse_trx(root: ET.Element, source: Path) -> list[TestOutcome]:
    outcomes = []
    for elem in root.iter():
        if _local(elem.tag) != "UnitTestResult":
            continue
        name = elem.get("testName")
        if name is None:
            raise ArtifactParseError(f"{source}: UnitTestResult without testName")
        raw = (elem.get("outcome") or "").lower()
        if raw in TRX_FAILED:
            outcome = Outcome.FAILED
        elif raw in TRX_PASSED:
            outcome = Outcome.PASSED
        else:
            outcome = Outcome.SKIPPED
        outcomes.append(TestOutcome(name=name, outcome=outcome, source=source))
    return outcomes


def _parse_junit(root: ET.Element, source: Path) -> list[TestOutcome]:
    outcomes = []
    for elem in root.iter():
        if _local(elem.tag) != "testcase":
            continue
        name = elem.get("name")
        if name is None:
            raise ArtifactParseError(f"{source}: testcase without name")
        children = {_local(child.tag) for child in elem}
        if children & {"failure", "error"}:
            outcome = Outcome.FAILED
        elif "skipped" in children:
            outcome = Outcome.SKIPPED
        else:
            outcome = Outcome.PASSED
        outcomes.append(TestOutcome(name=name, outcome=outcome, source=source))
    return outcomes


def parse_artifact(path: Path) -> list[TestOutcome]:
    """Parse one result artifact into test outcomes, in document order.

    Raises:
        ArtifactParseError: If the file cannot be read, is not XML, or is in
            an unknown format
    """
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise ArtifactParseError(f"{path}: malformed XML: {exc}") from exc
    except OSError as exc:
        raise ArtifactParseError(f"{path}: unreadable: {exc}") from exc

    kind = _local(root.tag)
    if kind == "TestRun":
        return _parse_trx(root, path)
    if kind in ("testsuites", "testsuite"):
        return _parse_junit(root, path)
    raise ArtifactParseError(f"{path}: unrecognized result format <{kind}>")


def collect_failures(
    directory: Path,
    pattern: str = DEFAULT_ARTIFACT_PATTERN,
    since: float | None = None,
    paths: Iterable[Path] | None = None,
) -> ResultReport:
    """Gather failed tests from result artifacts.

    Explicit paths skip discovery. Files that fail to parse are recorded in
    parse_errors and otherwise ignored.
    """
    artifacts = list(paths) if paths is not None else find_artifacts(directory, pattern, since)
    report = ResultReport(artifacts=artifacts)
    for artifact in artifacts:
        try:
            outcomes = parse_artifact(artifact)
        except ArtifactParseError as exc:
            logger.warning("%s: %s", PARSE_FAILURE_NOTE, exc)
            report.parse_errors.append(str(exc))
            continue
        report.failed.extend(o for o in outcomes if o.outcome is Outcome.FAILED)
    return report


def print_test_names(names: Iterable[str], console: Console) -> None:
    for name in names:
        console.print(f"  - {name}", markup=False, highlight=False, soft_wrap=True)


def print_failures(report: ResultReport, console: Console) -> None:
    """Print one line per failed test, name verbatim."""
    print_test_names((outcome.name for outcome in report.failed), console)
    if report.parse_errors:
        console.print(f"  ({PARSE_FAILURE_NOTE}: {len(report.parse_errors)} artifact(s))", markup=False)
