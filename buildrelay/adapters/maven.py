"""Maven build tool adapter.

Shells out to ``mvn`` (or a wrapper such as ``./mvnw``) and reads the
surefire XML reports, so test results are collected even when tests fail.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from pathlib import Path

from buildrelay.adapters.process import run_command
from buildrelay.core.errors import BuildError
from buildrelay.models.reports import TestReport

logger = logging.getLogger(__name__)

_NON_APP_SUFFIXES = ("-sources.jar", "-javadoc.jar", "-tests.jar")


def read_surefire_reports(report_dir: Path) -> TestReport:
    """Sum every ``TEST-*.xml`` suite in *report_dir*."""
    report = TestReport()
    if not report_dir.is_dir():
        return report
    for path in sorted(report_dir.glob("TEST-*.xml")):
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as exc:
            raise BuildError(f"Unreadable test report {path.name}: {exc}") from exc
        suites = [root] if root.tag == "testsuite" else root.findall("testsuite")
        for suite in suites:
            report = report.merge(
                TestReport(
                    tests_run=int(suite.get("tests", 0)),
                    failures=int(suite.get("failures", 0)),
                    errors=int(suite.get("errors", 0)),
                    skipped=int(suite.get("skipped", 0)),
                    report_files=[str(path)],
                )
            )
    return report


class MavenBuildTool:
    """``BuildTool`` backed by Maven.

    Parameters
    ----------
    executable:
        Maven command, e.g. ``"mvn"`` or ``"./mvnw"``.
    extra_args:
        Arguments appended to every invocation (profiles, ``-s settings.xml``).
    """

    def __init__(self, executable: str = "mvn", extra_args: Sequence[str] = ()) -> None:
        self.executable = executable
        self.extra_args = list(extra_args)

    def _mvn(self, source_dir: Path, goals: list[str], timeout: float) -> None:
        run_command(
            [self.executable, "-B", *goals, *self.extra_args],
            cwd=source_dir,
            timeout=timeout,
            error_cls=BuildError,
        )

    def compile(self, source_dir: Path, *, timeout: float) -> None:
        self._mvn(source_dir, ["compile"], timeout)

    def test(self, source_dir: Path, *, timeout: float) -> TestReport:
        report_dir = source_dir / "target" / "surefire-reports"
        try:
            self._mvn(source_dir, ["test", "-Dmaven.test.failure.ignore=true"], timeout)
        except BuildError as exc:
            raise BuildError(str(exc), report=read_surefire_reports(report_dir)) from exc
        report = read_surefire_reports(report_dir)
        logger.info("Tests: %s", report.summary())
        return report

    def package(self, source_dir: Path, *, timeout: float) -> Path:
        self._mvn(source_dir, ["package", "-DskipTests"], timeout)
        return find_application_jar(source_dir / "target")


def find_application_jar(target_dir: Path) -> Path:
    """Return the single application jar Maven left in *target_dir*."""
    candidates = [
        path
        for path in sorted(target_dir.glob("*.jar"))
        if not path.name.endswith(_NON_APP_SUFFIXES) and not path.name.startswith("original-")
    ]
    if not candidates:
        raise BuildError(f"No application jar found in {target_dir}")
    if len(candidates) > 1:
        names = ", ".join(p.name for p in candidates)
        raise BuildError(f"Ambiguous application jar in {target_dir}: {names}")
    return candidates[0]
