"""Pytest plugin for collecting and executing markdown HTTP tests.

This module integrates the `pytest-marcus` DSL with pytest by:
- registering custom command-line options;
- configuring a shared `DocumentParser` and `TestExecutor`;
- collecting markdown files as executable test specifications.

Markdown files matching the pattern `test_*.md` are automatically
collected; each `##` section becomes a pytest test item.
"""

from re import match
from typing import TYPE_CHECKING

from .spec import TestSpec

if TYPE_CHECKING:
    from pathlib import Path

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.config.argparsing import Parser
    from _pytest.nodes import Node


def pytest_addoption(parser: 'Parser') -> None:
    """Register pytest command-line options for pytest-marcus.

    Args:
        parser: Pytest argument parser.
    """
    group = parser.getgroup('marcus', 'markdown HTTP tests')
    group.addoption(
        '--marcus-timeout',
        action='store',
        type=float,
        dest='marcus_timeout',
        default=None,
        help='HTTP timeout of a single request, in seconds.',
    )
    group.addoption(
        '--marcus-retry-max',
        action='store',
        type=int,
        dest='marcus_retry_max',
        default=None,
        help='Default number of attempts while a wait condition is unmet.',
    )
    group.addoption(
        '--marcus-retry-delay',
        action='store',
        type=float,
        dest='marcus_retry_delay',
        default=None,
        help='Default delay between attempts, in seconds.',
    )


def pytest_configure(config: 'Config') -> None:
    """Configure pytest-marcus integration.

    This hook initializes a shared `DocumentParser` and a shared
    `TestExecutor`, attached to the pytest configuration object as
    `config.marcus_parser` and `config.marcus_executor`.

    Args:
        config: Pytest configuration object.
    """
    from pytest_marcus.core import DocumentParser  # noqa: PLC0415
    from pytest_marcus.runner import TestExecutor  # noqa: PLC0415
    from pytest_marcus.settings import RunnerSettings  # noqa: PLC0415

    options = {
        'timeout': config.getoption('marcus_timeout', default=None),
        'retry_max': config.getoption('marcus_retry_max', default=None),
        'retry_delay': config.getoption('marcus_retry_delay', default=None),
    }

    config.marcus_parser = DocumentParser()  # type: ignore[attr-defined]
    config.marcus_executor = TestExecutor(RunnerSettings(**{  # type: ignore[attr-defined]
        key: value
        for key, value in options.items()
        if value is not None
    }))


def pytest_unconfigure(config: 'Config') -> None:
    """Release the shared HTTP client.

    Args:
        config: Pytest configuration object.
    """
    if executor := getattr(config, 'marcus_executor', None):
        executor.close()


def pytest_collect_file(parent: 'Node', file_path: 'Path') -> TestSpec | None:
    """Collect markdown DSL specification files.

    Files matching the pattern `test_*.md` are treated as executable
    DSL specifications and collected using `TestSpec`.

    Args:
        parent: Parent pytest collection node.
        file_path: Path to the file being considered.

    Returns:
        A `TestSpec` collector if the file matches the DSL pattern, otherwise ``None``.
    """
    if match(r'^test_.+\.md$', file_path.name):
        return TestSpec.from_parent(
            parent,
            path=file_path,
        )

    return None
