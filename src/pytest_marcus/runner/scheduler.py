"""Sequential and parallel scheduling of test files.

Sequential mode runs files in the given order and tests in document
order, sharing one variable store per file. Parallel mode flattens all
tests into independent jobs: each job runs in its own thread with an
empty private store, and at most `workers` jobs run at the same time.

Both modes return results in the original (file, position) order.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from logging import getLogger
from threading import BoundedSemaphore
from time import perf_counter
from typing import TYPE_CHECKING

from pytest_marcus.context import VariableStore
from pytest_marcus.errors import DSLError

from .results import ExecutionResult, FileReport, RunReport

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from pytest_marcus.schema import TestDefinition, TestFile

    from .engine import TestExecutor

logger = getLogger(__name__)


def select(files: 'Sequence[TestFile]', only: int) -> tuple['TestFile', ...]:
    """Keep a single test, counted across all files.

    Args:
        files: Parsed files in run order.
        only: One-based number of the test to keep.

    Returns:
        A single file holding only the selected test.

    Raises:
        ValueError: If the number is out of range.
    """
    total = sum(len(file.tests) for file in files)
    if not 1 <= only <= total:
        raise ValueError(f'test number {only} is out of range, found {total} tests')

    number = only
    for file in files:
        if number <= len(file.tests):
            test = file.tests[number - 1]
            return (file.model_copy(update={'tests': (test,)}),)
        number -= len(file.tests)

    raise AssertionError('unreachable')  # pragma: no cover


class Scheduler:
    """Runner of test files in sequential or parallel mode."""

    def __init__(self, executor: 'TestExecutor', *, workers: int | None = None) -> None:
        """Initialize the scheduler.

        Args:
            executor: Executor running single tests.
            workers: Upper bound of simultaneously running jobs in
                parallel mode; taken from executor settings if omitted.
        """
        self.executor = executor
        self.workers = workers or executor.settings.workers

    def run(self, files: 'Sequence[TestFile]', *, parallel: bool = False) -> RunReport:
        """Run files in the requested mode.

        Args:
            files: Parsed files in run order.
            parallel: Whether to run all tests as independent parallel jobs.

        Returns:
            The run report.
        """
        if parallel:
            return self.run_parallel(files)

        return self.run_sequential(files)

    def run_test(self, test: 'TestDefinition', store: VariableStore, *,
                 path: 'Path', position: int) -> ExecutionResult:
        """Execute one test, capturing its outcome and duration."""
        error: DSLError | None = None

        start = perf_counter()
        try:
            self.executor.run(test, store, filename=str(path))
        except DSLError as failure:
            logger.debug('%s failed: %s', test.name, failure.message)
            error = failure

        return ExecutionResult(
            test=test,
            error=error,
            duration=timedelta(seconds=perf_counter() - start),
            path=path,
            position=position,
        )

    def run_sequential(self, files: 'Sequence[TestFile]') -> RunReport:
        """Run files one after another, sharing a store per file.

        A failed test does not stop the following ones, and never
        contributes saved values.

        Args:
            files: Parsed files in run order.

        Returns:
            The run report; file durations are sums of test durations.
        """
        start = perf_counter()

        reports = []
        for file in files:
            store = VariableStore()
            results = tuple(
                self.run_test(test, store, path=file.path, position=position)
                for position, test in enumerate(file.tests)
            )
            reports.append(FileReport(
                path=file.path,
                results=results,
                duration=sum((result.duration for result in results), timedelta()),
            ))

        return RunReport(
            files=tuple(reports),
            duration=timedelta(seconds=perf_counter() - start),
        )

    def run_parallel(self, files: 'Sequence[TestFile]') -> RunReport:
        """Run every test as an independent job.

        One thread is started per job, and a bounded semaphore limits
        the number of jobs running at once. Each job writes its result
        to its own slot, so no further synchronization is needed.

        Args:
            files: Parsed files in run order.

        Returns:
            The run report; file durations are the longest test duration.
        """
        start = perf_counter()

        jobs = [
            (file, position, test)
            for file in files
            for position, test in enumerate(file.tests)
        ]
        slots: list[ExecutionResult | None] = [None] * len(jobs)
        semaphore = BoundedSemaphore(self.workers)

        def work(index: int) -> None:
            file, position, test = jobs[index]
            with semaphore:
                slots[index] = self.run_test(test, VariableStore(), path=file.path, position=position)

        if jobs:
            with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix='marcus') as pool:
                for future in [pool.submit(work, index) for index in range(len(jobs))]:
                    future.result()

        reports = []
        offset = 0
        for file in files:
            results = tuple(
                result
                for result in slots[offset:offset + len(file.tests)]
                if result is not None
            )
            offset += len(file.tests)
            reports.append(FileReport(
                path=file.path,
                results=results,
                duration=max((result.duration for result in results), default=timedelta()),
            ))

        return RunReport(
            files=tuple(reports),
            duration=timedelta(seconds=perf_counter() - start),
        )
