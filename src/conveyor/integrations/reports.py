"""JUnit XML test report publisher."""

from __future__ import annotations

import json
import shutil
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import structlog

from conveyor.exceptions import NoReportsMatched, ReportParseError
from conveyor.integrations.artifacts import match_files
from conveyor.integrations.base import PublishResult
from conveyor.pipeline.constants import MAX_STDIO_CHARS
from conveyor.pipeline.definition import RetentionPolicy

logger = structlog.get_logger()


@dataclass
class CaseFailure:
    """A failed or errored test case."""

    suite: str
    classname: str
    name: str
    kind: str
    message: str = ""
    stdout: str = ""
    stderr: str = ""


@dataclass
class ReportSummary:
    """Aggregated counts over all parsed report files."""

    files: list[str] = field(default_factory=list)
    tests: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0
    failed_cases: list[CaseFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def _truncate(text: str | None, keep_long: bool) -> str:
    text = (text or "").strip()
    if keep_long or len(text) <= MAX_STDIO_CHARS:
        return text
    return text[:MAX_STDIO_CHARS] + f"\n... [truncated {len(text) - MAX_STDIO_CHARS} chars]"


def parse_junit(path: Path, summary: ReportSummary, *, keep_long_stdio: bool) -> None:
    """Parse one JUnit XML file into ``summary``.

    Both ``<testsuites>`` and bare ``<testsuite>`` roots are accepted.

    Raises:
        ReportParseError: If the file is not well-formed JUnit XML.
    """
    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as e:
        msg = f"Invalid JUnit XML in {path.name}: {e}"
        raise ReportParseError(msg, path=path) from e

    if root.tag == "testsuite":
        suites = [root]
    elif root.tag == "testsuites":
        suites = list(root.iter("testsuite"))
    else:
        msg = f"Unexpected root element <{root.tag}> in {path.name}"
        raise ReportParseError(msg, path=path)

    for suite in suites:
        suite_name = suite.get("name", "")
        for case in suite.findall("testcase"):
            summary.tests += 1
            if case.find("skipped") is not None:
                summary.skipped += 1
                continue

            for kind in ("failure", "error"):
                node = case.find(kind)
                if node is None:
                    continue
                if kind == "failure":
                    summary.failures += 1
                else:
                    summary.errors += 1
                summary.failed_cases.append(
                    CaseFailure(
                        suite=suite_name,
                        classname=case.get("classname", ""),
                        name=case.get("name", ""),
                        kind=kind,
                        message=node.get("message", "") or (node.text or "").strip(),
                        stdout=_truncate(case.findtext("system-out"), keep_long_stdio),
                        stderr=_truncate(case.findtext("system-err"), keep_long_stdio),
                    )
                )
                break


class JUnitReportPublisher:
    """Parses JUnit XML reports and publishes a summary per run.

    Published layout::

        <reports_dir>/<run_id>/summary.json
        <reports_dir>/<run_id>/files/<relative report path>
    """

    def __init__(self, reports_dir: Path, run_id: str) -> None:
        """Initialize the publisher.

        Args:
            reports_dir: Directory holding report sets of all runs.
            run_id: Identifier of the current run.
        """
        self.reports_dir = reports_dir
        self.run_id = run_id

    @property
    def run_dir(self) -> Path:
        """Report set directory of the current run."""
        return self.reports_dir / self.run_id

    def publish(
        self,
        pattern: str,
        retention: RetentionPolicy,
        *,
        source_dir: Path,
    ) -> PublishResult:
        """Parse and publish matching reports.

        Raises:
            NoReportsMatched: If nothing matches.
            ReportParseError: If a matched file is not valid JUnit XML.
        """
        log = logger.bind(pattern=pattern, source_dir=str(source_dir))
        files = match_files(source_dir, pattern, follow_symlinks=True)
        if not files:
            log.info("No test reports matched")
            raise NoReportsMatched(pattern)

        summary = ReportSummary()
        files_dir = self.run_dir / "files"
        for path in files:
            relative = path.relative_to(source_dir).as_posix()
            parse_junit(path, summary, keep_long_stdio=retention.keep_long_stdio)
            summary.files.append(relative)
            target = files_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)

        self.run_dir.mkdir(parents=True, exist_ok=True)
        (self.run_dir / "summary.json").write_text(
            json.dumps(summary.to_dict(), indent=2)
        )

        log.info(
            "Test reports published",
            files=len(files),
            tests=summary.tests,
            failures=summary.failures,
            errors=summary.errors,
        )

        if retention.keep_runs is not None:
            self.prune(retention.keep_runs)

        return PublishResult(
            parsed_count=len(files),
            tests=summary.tests,
            failures=summary.failures,
            errors=summary.errors,
            skipped=summary.skipped,
        )

    def prune(self, keep_runs: int) -> list[str]:
        """Delete the oldest report sets beyond ``keep_runs``.

        Run IDs are timestamp-prefixed, so name order is age order. The
        current run's set is never deleted.

        Returns:
            Names of the deleted report sets.
        """
        if not self.reports_dir.exists():
            return []
        sets = sorted(d.name for d in self.reports_dir.iterdir() if d.is_dir())
        others = [name for name in sets if name != self.run_id]
        excess = len(others) - (keep_runs - 1)
        removed = others[:excess] if excess > 0 else []
        for name in removed:
            shutil.rmtree(self.reports_dir / name)
        if removed:
            logger.info("Pruned old report sets", removed=removed)
        return removed
