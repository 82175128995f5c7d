"""Console reporting of run results.

Output layout for a single file:

    tests/users.md (2 tests)

      ✓ Create user
      ✗ Fetch user
        → status assertion failed: expected 200, got 404
           Response: {"error": "not found"}

    1 passed, 1 failed in 120ms

With several files each file is introduced by its path and followed by
its duration. Quiet mode hides passing tests and response previews.
"""

from typing import TYPE_CHECKING

from click import echo, style

from pytest_marcus.errors import AssertionFailure
from pytest_marcus.values import format_duration

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pytest_marcus.errors import DSLError
    from pytest_marcus.runner import ExecutionResult, FileReport, RunReport
    from pytest_marcus.schema import TestFile

PASS_MARK = '✓'
FAIL_MARK = '✗'
ARROW = '→'

INDENT = '  '
PREVIEW_INDENT = ' ' * 7


class ConsoleReporter:
    """Reporter writing human-readable results with `click`."""

    def __init__(self, *, quiet: bool = False, color: bool | None = None) -> None:
        """Initialize the reporter.

        Args:
            quiet: Hide passing tests and response previews.
            color: Force (`True`) or disable (`False`) ANSI styles;
                detected from the output stream when `None`.
        """
        self.quiet = quiet
        self.color = color

    def echo(self, message: str = '') -> None:
        """Write one line to standard output."""
        echo(message, color=self.color)

    def header(self, target: str, files: 'Sequence[TestFile]') -> None:
        """Write the run header.

        Args:
            target: Target as given on the command line.
            files: Files about to run.
        """
        total = sum(len(file.tests) for file in files)

        if len(files) == 1:
            self.echo(f'{files[0].path} ({total} tests)')
        else:
            self.echo(f'{target} ({len(files)} files, {total} tests)')

        self.echo()

    def failure(self, error: 'DSLError') -> str:
        """Format the failure lines of a test."""
        message = style(f'{INDENT * 2}{ARROW} {error.message}', fg='red')

        if isinstance(error, AssertionFailure) and error.preview and not self.quiet:
            message += f'\n{PREVIEW_INDENT}Response: {error.preview}'

        return message

    def result(self, result: 'ExecutionResult') -> None:
        """Write the outcome of a single test."""
        if result.error is None:
            if not self.quiet:
                self.echo(f'{INDENT}{style(PASS_MARK, fg="green")} {result.test.name}')
            return

        self.echo(f'{INDENT}{style(FAIL_MARK, fg="red")} {result.test.name}')
        self.echo(self.failure(result.error))

    def file(self, report: 'FileReport', *, grouped: bool) -> None:
        """Write the results of a file.

        Args:
            report: File results.
            grouped: Whether the run holds several files, in which
                case the file path and duration frame the results.
        """
        if grouped:
            self.echo(str(report.path))

        for result in report.results:
            self.result(result)

        if grouped:
            self.echo(f'{INDENT}{style(format_duration(report.duration), dim=True)}')
            self.echo()

    def summary(self, report: 'RunReport') -> None:
        """Write the pass/fail summary line."""
        duration = format_duration(report.duration)

        if report.failed:
            self.echo(f'{report.passed} passed, {report.failed} failed in {duration}')
        else:
            self.echo(f'{report.passed} passed in {duration}')

    def render(self, report: 'RunReport') -> None:
        """Write all file results followed by the summary."""
        grouped = len(report.files) > 1

        for file in report.files:
            self.file(file, grouped=grouped)

        if not grouped:
            self.echo()

        self.summary(report)
