"""Execution results for ordered presentation.

Results are plain immutable records: the scheduler produces them, and
reporters only read them.
"""

from datetime import timedelta  # noqa: TC003
from pathlib import Path  # noqa: TC003

from pydantic import Field

from pytest_marcus.errors import DSLError  # noqa: TC001
from pytest_marcus.models import SchemaModel
from pytest_marcus.schema import TestDefinition  # noqa: TC001


class ExecutionResult(SchemaModel):
    """Outcome of a single test."""

    test: TestDefinition
    error: DSLError | None = None
    duration: timedelta

    path: Path = Field(
        title='Source file',
        description='Path of the file declaring the test.',
    )

    position: int = Field(
        title='Position',
        description='Zero-based position of the test within its file.',
    )

    @property
    def passed(self) -> bool:
        """Whether the test passed."""
        return self.error is None


class FileReport(SchemaModel):
    """Results of one file in document order.

    The duration is the sum of test durations in sequential mode and
    the longest test duration in parallel mode.
    """

    path: Path
    results: tuple[ExecutionResult, ...] = ()
    duration: timedelta

    @property
    def passed(self) -> int:
        """Number of passed tests."""
        return sum(1 for result in self.results if result.passed)

    @property
    def failed(self) -> int:
        """Number of failed tests."""
        return len(self.results) - self.passed


class RunReport(SchemaModel):
    """Results of a whole run with its wall-clock duration."""

    files: tuple[FileReport, ...] = ()
    duration: timedelta

    @property
    def results(self) -> tuple[ExecutionResult, ...]:
        """All results in presentation order."""
        return tuple(result for report in self.files for result in report.results)

    @property
    def passed(self) -> int:
        """Number of passed tests."""
        return sum(report.passed for report in self.files)

    @property
    def failed(self) -> int:
        """Number of failed tests."""
        return sum(report.failed for report in self.files)

    @property
    def total(self) -> int:
        """Number of executed tests."""
        return self.passed + self.failed
