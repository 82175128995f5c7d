"""Pytest integration for markdown test files.

This module defines a custom pytest file collector that treats markdown
files as executable DSL specifications.

Each collected file is parsed using the shared `DocumentParser` and
converted into one `TestCase` per `##` section. Cases of a file share a
single variable store and run in document order, so values saved by a
test are visible to the following ones.
"""

from typing import TYPE_CHECKING

import pytest

from pytest_marcus.context import VariableStore

from .case import TestCase

if TYPE_CHECKING:
    from collections.abc import Iterable


class TestSpec(pytest.File):
    """Pytest file collector for markdown test files.

    The collector owns the variable store shared by its cases.
    """

    __test__ = False

    def collect(self) -> 'Iterable[TestCase]':
        """Collect pytest test cases from a markdown file.

        Returns:
            Iterable of `TestCase` instances for pytest execution.

        Raises:
            DSLSchemaError: If a section violates the data model.
        """
        spec = self.config.marcus_parser.parse_file(self.path)  # type: ignore[attr-defined]

        self.store = VariableStore()

        for position, test in enumerate(spec.tests):
            yield TestCase.from_parent(
                self,
                name=test.name,
                test=test,
                position=position,
                store=self.store,
                executor=self.config.marcus_executor,  # type: ignore[attr-defined]
            )
