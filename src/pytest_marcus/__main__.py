"""Command line runner for markdown HTTP tests.

    marcus run [--parallel] [--quiet] [--only N] TARGET
    marcus parse TARGET

`TARGET` is a markdown file or a directory searched recursively for
`*.md` files. `run` exits with status 1 when any test fails.
"""

import sys
from json import dumps
from logging import DEBUG, basicConfig
from pathlib import Path

from click import BadParameter, ClickException, IntRange, argument, echo, group, option
from click import Path as PathParam
from pydantic import ValidationError

from pytest_marcus.discovery import discover, load
from pytest_marcus.errors import DSLSchemaError
from pytest_marcus.reporting import ConsoleReporter
from pytest_marcus.runner import Scheduler, TestExecutor, select
from pytest_marcus.schema import TestFile  # noqa: TC001
from pytest_marcus.settings import RunnerSettings

TargetPath = PathParam(
    exists=True,
    readable=True,
    path_type=Path,
)


def _load(paths: list[Path], *, skip_empty: bool = True) -> tuple[TestFile, ...]:
    """Parse files, reporting failures as command line errors."""
    try:
        return load(paths, skip_empty=skip_empty)
    except (OSError, DSLSchemaError) as error:
        raise ClickException(str(error)) from error


@group(help='Markdown-driven HTTP API test runner.')
def cli() -> None:
    """Root CLI group for pytest-marcus tools."""
    return None


@cli.command(
    name='run',
    help='Run markdown tests from a file or a directory.',
)
@option(
    '-p', '--parallel',
    is_flag=True,
    default=False,
    help='Run every test as an independent job in a bounded worker pool.',
)
@option(
    '-q', '--quiet',
    is_flag=True,
    default=False,
    help='Show only failing tests, without response previews.',
)
@option(
    '--only',
    type=IntRange(min=1),
    default=None,
    help='Run only the N-th test (1-indexed, counted across all files).',
)
@option(
    '-w', '--workers',
    type=IntRange(min=1),
    default=None,
    help='Maximum number of tests running at once in parallel mode.',
)
@option(
    '--timeout',
    type=float,
    default=None,
    help='HTTP timeout of a single request, in seconds.',
)
@option(
    '--no-color',
    is_flag=True,
    default=False,
    help='Disable colored output.',
)
@option(
    '-v', '--verbose',
    is_flag=True,
    default=False,
    help='Log engine activity to standard error.',
)
@argument('target', type=TargetPath)
def run_tests(target: Path, parallel: bool, quiet: bool,  # noqa: PLR0913
              only: int | None, workers: int | None, timeout: float | None,
              no_color: bool, verbose: bool) -> None:
    """Run markdown tests and report the results.

    Args:
        target: File or directory to run.
        parallel: Run tests in parallel mode.
        quiet: Hide passing tests and response previews.
        only: Number of the single test to run.
        workers: Worker pool size in parallel mode.
        timeout: HTTP timeout in seconds.
        no_color: Disable ANSI styles.
        verbose: Enable debug logging.
    """
    if verbose:
        basicConfig(level=DEBUG, format='%(asctime)s %(name)s %(levelname)s %(message)s')

    overrides = {
        key: value
        for key, value in (('workers', workers), ('timeout', timeout))
        if value is not None
    }
    try:
        settings = RunnerSettings(**overrides)
    except ValidationError as error:
        raise ClickException(str(error)) from error

    reporter = ConsoleReporter(quiet=quiet, color=False if no_color else None)

    paths = discover(target)
    if not paths:
        reporter.echo('No test files found.')
        return

    files = _load(paths)
    if not files:
        reporter.echo('No tests found.')
        return

    if only is not None:
        try:
            files = select(files, only)
        except ValueError as error:
            raise BadParameter(str(error), param_hint="'--only'") from error

    reporter.header(str(target), files)

    with TestExecutor(settings) as executor:
        report = Scheduler(executor).run(files, parallel=parallel)

    reporter.render(report)

    if report.failed:
        sys.exit(1)


@cli.command(
    name='parse',
    help='Print parsed test definitions as JSON.',
)
@argument('target', type=TargetPath)
def parse_tests(target: Path) -> None:
    """Parse markdown tests and print them as JSON.

    Args:
        target: File or directory to parse.
    """
    files = _load(discover(target), skip_empty=False)

    echo(dumps(
        [file.model_dump(mode='json') for file in files],
        ensure_ascii=False,
        indent=2,
    ))


if __name__ == '__main__':
    cli()
