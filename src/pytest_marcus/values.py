"""Core value definitions for the DSL runtime.

This module defines the value types flowing between parsed responses,
the variable store, and assertions. It also provides the literal grammar
of expected values, the type-aware equality used by every comparison,
and the duration notation used by retry options and duration assertions.
"""

from datetime import timedelta
from json import dumps
from re import IGNORECASE
from re import compile as regexp
from typing import Any

#: A value decoded from a JSON document.
type JSONValue = str | int | float | bool | list['JSONValue'] | dict[str, 'JSONValue'] | None

#: A value in runtime represents any Python object received from
#: decoded responses or user-provided stores prior to stringification.
type RuntimeValue = Any

MAPPINGS = (dict,)
NUMBERS = (int, float)
SEQUENCES = (list, tuple)

#: ASCII-only numeric literals; `int` and `float` alone also accept
#: underscores, padding whitespace, and non-ASCII digits.
_INTEGER_LITERAL = regexp(r'[+-]?[0-9]+')
_FLOAT_LITERAL = regexp(
    r'[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:e[+-]?[0-9]+)?|inf(?:inity)?|nan)',
    IGNORECASE,
)

#: Pattern for one duration component, for example `1.5s` or `300ms`.
_DURATION_COMPONENT = r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)'

_DURATION_PATTERN = regexp(rf'^(?P<sign>[-+]?)(?P<body>(?:{_DURATION_COMPONENT})+)$')
_DURATION_COMPONENTS = regexp(_DURATION_COMPONENT)

#: Units for duration, in microseconds.
_DURATION_UNITS = {
    'ns': 0.001,
    'us': 1,
    'µs': 1,
    'μs': 1,
    'ms': 1_000,
    's': 1_000_000,
    'm': 60_000_000,
    'h': 3_600_000_000,
}


def stringify(value: RuntimeValue) -> str:
    """Render a value in its default string form.

    Strings are kept as-is, booleans and null use their JSON spelling,
    integral floats drop the fractional part, and containers are
    serialized as compact JSON.

    Args:
        value: Value to render.

    Returns:
        The textual representation used for interpolation and
        loose comparison.
    """
    if isinstance(value, str):
        return value

    if value is None:
        return 'null'

    if isinstance(value, bool):
        return 'true' if value else 'false'

    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:  # noqa: PLR2004
        return str(int(value))

    if isinstance(value, (*MAPPINGS, *SEQUENCES)):
        return dumps(value, ensure_ascii=False, separators=(',', ':'))

    return str(value)


def parse_expected(value: str) -> RuntimeValue:
    """Convert an expected-value literal into a typed value.

    Grammar, in order of precedence:
        - double-quoted text is a string literal without the quotes;
        - `true` and `false` are booleans;
        - an integer literal is an `int`;
        - a float literal is a `float`;
        - anything else is kept as a verbatim string.

    Args:
        value: Raw literal text.

    Returns:
        The typed expected value.
    """
    if value.startswith('"') and value.endswith('"'):
        return value.strip('"')

    if value == 'true':
        return True
    if value == 'false':
        return False

    if _INTEGER_LITERAL.fullmatch(value):
        return int(value)

    if _FLOAT_LITERAL.fullmatch(value):
        return float(value)

    return value


def _same_kind(actual: RuntimeValue, expected: RuntimeValue) -> bool:
    """Tell whether two values may be compared directly."""
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool)

    if isinstance(actual, NUMBERS) and isinstance(expected, NUMBERS):
        return True

    return type(actual) is type(expected)


def values_equal(actual: RuntimeValue, expected: RuntimeValue) -> bool:
    """Compare two values with type-aware loose equality.

    Values of the same kind are compared directly first. Otherwise both
    operands are rendered in their default string form and compared as
    text, so `42` equals `"42"` and `True` equals `"true"`. Nested values
    are not compared structurally beyond their rendering.

    Args:
        actual: Value taken from a response.
        expected: Value declared in the test.

    Returns:
        True if values are considered equal.
    """
    if _same_kind(actual, expected) and actual == expected:
        return True

    return stringify(actual) == stringify(expected)


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as `500ms`, `2s`, `1.5s` or `1m30s`.

    Args:
        value: Duration text, surrounding whitespace is ignored.

    Returns:
        Parsed `timedelta` instance.

    Raises:
        ValueError: If the value is not a valid duration.
    """
    text = value.strip()
    if text in ('0', '+0', '-0'):
        return timedelta()

    match = _DURATION_PATTERN.match(text)
    if not match:
        raise ValueError(f'Invalid duration {value!r}')

    micros = sum(
        float(amount) * _DURATION_UNITS[unit]
        for amount, unit in _DURATION_COMPONENTS.findall(match.group('body'))
    )
    if match.group('sign') == '-':
        micros = -micros

    return timedelta(microseconds=micros)


def format_duration(value: timedelta) -> str:
    """Format a duration for humans.

    Durations under one second are shown in whole milliseconds,
    longer ones in seconds with two decimals.

    Args:
        value: Duration to format.

    Returns:
        Formatted duration, for example `250ms` or `1.50s`.
    """
    seconds = value.total_seconds()
    if seconds < 1:
        return f'{int(seconds * 1000)}ms'

    return f'{seconds:.2f}s'
