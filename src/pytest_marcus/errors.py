"""Error hierarchy of pytest-marcus.

Every failure raised while parsing or running a markdown test derives
from `DSLError`. Failures are local to a single test: the scheduler
records them in the test result and moves on.

The one-line `message` of an error is what the console reporter prints.
`str()` renders the message followed by the location of the failing test
and, once a definition is attached, a YAML dump of it together with the
variables known at the moment of failure:

    status assertion failed: expected 200, got 404
        in "tests/users.md"
        on "Fetch user"
            ...
            vars:
              user_id: 7
            ---
            name: Fetch user
            url: https://api.example.com/users/{{user_id}}
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump

from pytest_marcus.values import MAPPINGS, SEQUENCES

if TYPE_CHECKING:
    from pathlib import Path
    from typing import Self

    from pydantic import BaseModel, ValidationError

#: Indentation of location lines; snippets are indented twice as much.
INDENT = 4

UNKNOWN_FILE = '<unicode string>'
OPAQUE_VALUE = '<runtime object>'

SNIPPET_START = '...'
SNIPPET_BREAK = '---'

_PLAIN_TYPES = (str, int, float, bool)


class ErrorContext(TypedDict, total=False):
    """Location and state of a failure.

    Every key is optional; rendering skips what is unknown.
    """

    #: Path of the markdown file.
    filename: str | None

    #: Heading text of the failing test.
    test_name: str | None
    #: Zero-based position of the test within its file.
    position: int | None
    #: Attempt number of the failing request.
    attempt: int | None

    #: Underlying exception, if any.
    error: Exception | None

    #: Variables of the store at the moment of failure.
    context: dict[str, Any] | None
    #: Dumped definition of the failing test.
    element: Any


def _plain(value: Any) -> Any:  # noqa: ANN401
    """Reduce a value to builtins that YAML can dump safely."""
    if value is None or isinstance(value, _PLAIN_TYPES):
        return value

    if isinstance(value, MAPPINGS):
        return {str(key): _plain(item) for key, item in value.items()}

    if isinstance(value, SEQUENCES):
        return [_plain(item) for item in value]

    return OPAQUE_VALUE


def _yaml_lines(value: Any, indent: int) -> list[str]:  # noqa: ANN401
    """Dump a value as indented YAML lines, skipping blank ones."""
    text = dump(_plain(value), indent=2, sort_keys=False, allow_unicode=True)
    prefix = ' ' * indent

    return [f'{prefix}{line}' for line in text.splitlines() if line.strip()]


def render_location(context: ErrorContext, indent: int = INDENT) -> list[str]:
    """Render the file and test a failure belongs to.

    Args:
        context: Error context.
        indent: Number of leading spaces.

    Returns:
        The `in "<file>"` line, followed by the `on "<test>"` line when
        the test name is known.
    """
    prefix = ' ' * indent

    where = f'{prefix}in "{context.get("filename") or UNKNOWN_FILE}"'
    if (position := context.get('position')) is not None:
        where += f', test {position + 1}'

    lines = [where]

    if test_name := context.get('test_name'):
        on = f'{prefix}on "{test_name}"'
        if (attempt := context.get('attempt')) is not None:
            on += f', attempt {attempt}'
        lines.append(on)

    return lines


def render_snippet(context: ErrorContext, indent: int = INDENT * 2) -> list[str]:
    """Render the failing definition and the known variables as YAML.

    Args:
        context: Error context.
        indent: Number of leading spaces.

    Returns:
        Snippet lines, or nothing when no definition is attached.
    """
    element = context.get('element')
    if not element:
        return []

    prefix = ' ' * indent
    lines = [f'{prefix}{SNIPPET_START}']

    if variables := context.get('context'):
        lines.extend(_yaml_lines({'vars': variables}, indent))
        lines.append(f'{prefix}{SNIPPET_BREAK}')

    lines.extend(_yaml_lines(element, indent))

    return lines


def format_error(message: str, context: ErrorContext | None = None) -> str:
    """Append location and snippet lines to an error message."""
    if not context:
        return message

    return linesep.join([message, *render_location(context), *render_snippet(context)])


class DSLError(Exception):
    """Base exception for all pytest-marcus errors."""

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: One-line error description.
            context: Location and state of the failure.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """Message with location and snippet."""
        return format_error(self.message, self.context)

    def with_context(self, context: ErrorContext) -> 'Self':
        """Merge location details into the error.

        Args:
            context: Keys to add or replace.

        Returns:
            The same error instance.
        """
        self.context = ErrorContext({**(self.context or {}), **context})  # type: ignore[typeddict-item]
        return self


class DSLSchemaError(DSLError):
    """A parsed test cannot be represented by the data model.

    The markdown grammar is tolerant, so this only signals values the
    parser produced but the models reject.
    """

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            data: Any = None,  # noqa: ANN401
                            filename: str | None = None,
                            test_name: str | None = None) -> 'Self':
        """Wrap the first detail of a validation failure.

        Args:
            error: ValidationError raised by Pydantic.
            data: Values the model was built from.
            filename: Path of the markdown file.
            test_name: Heading text of the test being parsed.

        Returns:
            A schema error naming the invalid location.
        """
        context = ErrorContext(
            filename=filename,
            test_name=test_name,
            error=error,
            element=data,
        )

        details = error.errors(include_url=False, include_input=False)
        if not details:  # pragma: no cover
            return cls('Validation error', context=context)

        location = '.'.join(str(key) for key in details[0]['loc'])

        return cls(f'Invalid {location or "value"}: {details[0]["msg"]}', context=context)


class DSLRuntimeError(DSLError):
    """A test failed while building, sending, or validating its request."""

    def attach(self, model: 'BaseModel', *,
               context: dict[str, Any] | None = None,
               filename: str | None = None,
               test_name: str | None = None,
               attempt: int | None = None) -> 'Self':
        """Attach the failing definition and its location.

        Args:
            model: Definition of the failing test.
            context: Variables of the store at failure time.
            filename: Path of the markdown file.
            test_name: Heading text of the failing test.
            attempt: Attempt number of the failing request.

        Returns:
            The same error instance.
        """
        return self.with_context(ErrorContext(
            filename=filename,
            test_name=test_name,
            attempt=attempt,
            context=context,
            element=model.model_dump(
                mode='json',
                exclude_none=True,
                exclude_defaults=True,
            ),
        ))


class RequestError(DSLRuntimeError):
    """Transport failure while sending a request or reading its response."""


class WaitTimeoutError(DSLRuntimeError):
    """Wait condition still unmet after the maximum number of attempts."""

    def __init__(self, message: str, *, attempts: int,
                 context: ErrorContext | None = None) -> None:
        """Initialize a wait timeout.

        Args:
            message: Description naming the unmet condition.
            attempts: Number of attempts performed.
            context: Location and state of the failure.
        """
        self.attempts = attempts

        super().__init__(message, context=context)


class AssertionFailure(DSLRuntimeError, AssertionError):
    """An assertion does not hold for the final response.

    Status failures also carry a truncated response body, which the
    console reporter hides in quiet mode.
    """

    def __init__(self, message: str, *, preview: str | None = None,
                 context: ErrorContext | None = None) -> None:
        """Initialize an assertion failure.

        Args:
            message: Description with expected and actual values.
            preview: Truncated response body.
            context: Location and state of the failure.
        """
        self.preview = preview

        super().__init__(message, context=context)

    def __str__(self) -> str:
        """Message with response preview, location, and snippet."""
        message = self.message
        if self.preview:
            message += f'{linesep}{" " * INDENT}Response: {self.preview}'

        return format_error(message, self.context)


class FieldLookupError(DSLRuntimeError):
    """A dot-path cannot be followed in a decoded JSON document."""

    def __init__(self, message: str, *, path: str) -> None:
        """Initialize a lookup error.

        Args:
            message: Description naming the failing path.
            path: The full dot-path.
        """
        self.path = path

        super().__init__(message)


class SaveExtractionError(DSLRuntimeError):
    """A save directive found no field after the assertions passed."""


class FileAccessError(DSLRuntimeError):
    """A referenced payload or expected-body file cannot be read."""

    def __init__(self, message: str, *, path: 'Path | str') -> None:
        """Initialize a file access error.

        Args:
            message: Description naming the file.
            path: Resolved path of the unreadable file.
        """
        self.path = path

        super().__init__(message)
