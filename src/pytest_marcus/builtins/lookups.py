"""Field extraction from decoded JSON responses.

This module provides the dot-path resolver used by assertions, wait
conditions, and save directives. Unlike a tolerant variable lookup, any
missing key or non-object intermediate fails immediately with an error
naming the offending path.

Array indices are not supported: every segment must index into a JSON
object, so `items.0.id` fails on an array even though `0` is numeric.
"""

from typing import TYPE_CHECKING

from pytest_marcus.errors import FieldLookupError
from pytest_marcus.values import MAPPINGS

if TYPE_CHECKING:
    from pytest_marcus.values import RuntimeValue

#: Separator between path segments.
PATH_SEPARATOR = '.'


class FieldLookup:
    """Resolver for dotted-path access into JSON objects."""

    def __init__(self, path: str) -> None:
        """Initialize the resolver with a dotted path.

        Args:
            path: Dot-separated path, each segment being an object key.
        """
        self.path = path
        self.segments = path.split(PATH_SEPARATOR)

    def __call__(self, document: 'RuntimeValue') -> 'RuntimeValue':
        """Resolve the path against a document."""
        return self.resolve(document)

    def resolve(self, document: 'RuntimeValue') -> 'RuntimeValue':
        """Resolve the path against a decoded JSON document.

        Args:
            document: Decoded JSON value, usually an object.

        Returns:
            The value found at the end of the path.

        Raises:
            FieldLookupError: If a key is missing or an intermediate
                value is not an object.
        """
        current = document

        for segment in self.segments:
            if not isinstance(current, MAPPINGS):
                raise FieldLookupError(
                    f"cannot traverse into non-object at '{segment}'",
                    path=self.path,
                )
            if segment not in current:
                raise FieldLookupError(
                    f"field '{self.path}' not found",
                    path=self.path,
                )
            current = current[segment]

        return current


def extract(document: 'RuntimeValue', path: str) -> 'RuntimeValue':
    """Extract a field from a decoded JSON document by dot-path.

    Args:
        document: Decoded JSON value.
        path: Dot-separated object keys.

    Returns:
        The extracted value.

    Raises:
        FieldLookupError: If the path cannot be followed.
    """
    return FieldLookup(path).resolve(document)
