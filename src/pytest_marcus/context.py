"""Per-file variable scope and request interpolation.

This module defines the variable store shared by the tests of one file
in sequential mode, and the interpolator substituting `{{name}}`
placeholders into outgoing requests.
"""

from typing import TYPE_CHECKING

from pytest_marcus.values import RuntimeValue, stringify

if TYPE_CHECKING:
    from collections.abc import Mapping


def interpolate(text: str, variables: 'Mapping[str, RuntimeValue] | None') -> str:
    """Substitute `{{name}}` placeholders with stored values.

    Every literal occurrence of `{{name}}` is replaced, for each stored
    name, by the default string form of its value. Unknown placeholders
    are left untouched. There is no escaping: a name that is a substring
    of another name makes the result depend on substitution order.

    Args:
        text: Template text.
        variables: Stored values, may be `None`.

    Returns:
        Interpolated text, or the input itself for an empty store.
    """
    if not variables:
        return text

    result = text
    for name, value in variables.items():
        result = result.replace(f'{{{{{name}}}}}', stringify(value))

    return result


class VariableStore(dict[str, RuntimeValue]):
    """Mutable name to value mapping scoped to one file.

    A store is created empty for each file in sequential mode and for
    each job in parallel mode. It is mutated only along the sequential
    path, after every assertion of a test passed.
    """

    def interpolate(self, text: str) -> str:
        """Interpolate stored values into text."""
        return interpolate(text, self)

    def interpolate_map(self, values: 'Mapping[str, str]') -> dict[str, str]:
        """Interpolate stored values into every value of a mapping.

        Args:
            values: Mapping of names to template values (for example headers).

        Returns:
            A new mapping with interpolated values; keys are kept as-is.
        """
        return {
            key: interpolate(value, self)
            for key, value in values.items()
        }

    def snapshot(self) -> dict[str, RuntimeValue]:
        """Return a detached copy of the current values."""
        return dict(self)
