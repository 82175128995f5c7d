"""Pytest item executing a single markdown HTTP test."""

from typing import TYPE_CHECKING

import pytest

from pytest_marcus.errors import DSLError

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from _pytest._code.code import ExceptionInfo, TerminalRepr

if TYPE_CHECKING:
    from pytest_marcus.context import VariableStore
    from pytest_marcus.runner import TestExecutor
    from pytest_marcus.schema import TestDefinition


class TestCase(pytest.Item):
    """Pytest item backed by a parsed test definition.

    The variable store is owned by the parent file collector; a failed
    case leaves it untouched.
    """

    __test__ = False

    def __init__(self, *,
                 test: 'TestDefinition',
                 position: int,
                 store: 'VariableStore',
                 executor: 'TestExecutor',
                 **kwargs: 'Any') -> None:
        """Initialize a pytest test case.

        Args:
            test: Parsed test definition.
            position: Zero-based position of the test within its file.
            store: Variable store shared by the cases of the file.
            executor: Shared test executor.
            **kwargs: Keyword pytest.Item arguments.
        """
        super().__init__(**kwargs)

        self.test = test
        self.position = position
        self.store = store
        self.executor = executor

    def runtest(self) -> None:
        """Execute the HTTP test."""
        self.executor.run(self.test, self.store, filename=f'{self.path}')

    def repr_failure(self, excinfo: 'ExceptionInfo[BaseException]',
                     style: 'Any' = None) -> 'str | TerminalRepr':
        """Render DSL failures without the Python traceback.

        Args:
            excinfo: Information about the raised exception.
            style: Traceback style requested by pytest.

        Returns:
            The formatted failure.
        """
        if isinstance(excinfo.value, DSLError):
            return str(excinfo.value)

        return super().repr_failure(excinfo, style=style)

    def reportinfo(self) -> tuple['Any', int | None, str]:
        """Describe the test location for pytest reports."""
        return self.path, None, f'{self.name} [{self.test.method} {self.test.url}]'
