"""Test report model collected by the Tested stage."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict


class TestReport(BaseModel):
    """Aggregated unit-test results from the build tool.

    Collected even when tests fail so the failure detail can carry it.
    """

    # Not a pytest test class.
    __test__: ClassVar[bool] = False

    model_config = ConfigDict(frozen=True)

    tests_run: int = 0
    failures: int = 0
    errors: int = 0
    skipped: int = 0
    report_files: list[str] = []

    @property
    def passed(self) -> bool:
        return self.failures == 0 and self.errors == 0

    def summary(self) -> str:
        return (
            f"tests={self.tests_run} failures={self.failures} "
            f"errors={self.errors} skipped={self.skipped}"
        )

    def merge(self, other: TestReport) -> TestReport:
        """Sum two reports (one per surefire suite file)."""
        return TestReport(
            tests_run=self.tests_run + other.tests_run,
            failures=self.failures + other.failures,
            errors=self.errors + other.errors,
            skipped=self.skipped + other.skipped,
            report_files=[*self.report_files, *other.report_files],
        )
