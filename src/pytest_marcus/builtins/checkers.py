"""Built-in assertion checkers for pytest-marcus DSL.

This module defines one checker per assertion kind. A checker receives
the compiled assertion, the captured response, and runtime parameters;
it returns nothing on success and raises on failure:
    - `AssertionFailure` when the response does not satisfy the assertion;
    - `FileAccessError` when a referenced file cannot be read;
    - `DSLRuntimeError` when the assertion itself cannot be evaluated
      (invalid literal, unknown transform).

Comparisons use the type-aware equality from `pytest_marcus.values`.
"""

from collections.abc import Callable, Iterable, Mapping
from json import JSONDecodeError, dumps, loads
from pathlib import Path
from typing import TYPE_CHECKING

from pytest_marcus.errors import (
    AssertionFailure,
    DSLRuntimeError,
    FieldLookupError,
    FileAccessError,
)
from pytest_marcus.schema import Assertion, AssertionKind, ResponseSnapshot
from pytest_marcus.values import (
    MAPPINGS,
    SEQUENCES,
    format_duration,
    parse_duration,
    parse_expected,
    stringify,
    values_equal,
)

from .lookups import extract
from .transforms import apply_transforms

if TYPE_CHECKING:
    from pytest_marcus.values import RuntimeValue

#: A checker validates one assertion against a captured response.
type Checker = Callable[[Assertion, ResponseSnapshot, Mapping[str, 'RuntimeValue']], None]

#: Default number of response characters attached to status failures.
PREVIEW_LIMIT = 500


def _status(assertion: Assertion, response: ResponseSnapshot,
            params: Mapping[str, 'RuntimeValue']) -> None:
    """Status code checker.

    A mismatch attaches a truncated response preview when the body is
    not empty.
    """
    try:
        expected = int(assertion.value)
    except ValueError:
        raise DSLRuntimeError(f'invalid status code in assertion: {assertion.value}') from None

    if response.status == expected:
        return

    preview = response.preview(params.get('preview_limit', PREVIEW_LIMIT)) or None

    raise AssertionFailure(
        f'status assertion failed: expected {expected}, got {response.status}',
        preview=preview,
    )


def _body_contains(assertion: Assertion, response: ResponseSnapshot,
                   params: Mapping[str, 'RuntimeValue']) -> None:  # noqa: ARG001
    """Field presence checker.

    Without transforms the field is present if it is a top-level key or
    resolves as a dot-path. With transforms the field is extracted,
    transformed, and must not be empty.
    """
    document = response.document
    if document is None:
        raise AssertionFailure('body contains assertion failed: response is not valid JSON')

    path = assertion.path
    missing = f"body contains assertion failed: field '{path}' not found in response"

    if not assertion.transforms:
        if path in document:
            return
        try:
            extract(document, path)
        except FieldLookupError:
            raise AssertionFailure(missing) from None
        return

    try:
        value = extract(document, path)
    except FieldLookupError:
        raise AssertionFailure(missing) from None

    try:
        transformed = apply_transforms(stringify(value), assertion.transforms)
    except DSLRuntimeError as base:
        raise DSLRuntimeError(f'body contains assertion failed: {base.message}') from base

    if not transformed:
        raise AssertionFailure(f"body contains assertion failed: field '{path}' is empty after transform")


def _field_equals(assertion: Assertion, response: ResponseSnapshot,
                  params: Mapping[str, 'RuntimeValue']) -> None:  # noqa: ARG001
    """Field value checker with optional transform chain."""
    document = response.document
    if document is None:
        raise AssertionFailure('field equals assertion failed: response is not valid JSON')

    try:
        actual = extract(document, assertion.path)
    except FieldLookupError as base:
        raise AssertionFailure(f'field equals assertion failed: {base.message}') from base

    expected = parse_expected(assertion.value)
    suffix = ''

    if assertion.transforms:
        try:
            actual = apply_transforms(stringify(actual), assertion.transforms)
        except DSLRuntimeError as base:
            raise DSLRuntimeError(f'field equals assertion failed: {base.message}') from base
        suffix = ' (after transform)'

    if not values_equal(actual, expected):
        raise AssertionFailure(
            f"field equals assertion failed: field '{assertion.field}' "
            f'expected {stringify(expected)}, got {stringify(actual)}{suffix}',
        )


def _duration(assertion: Assertion, response: ResponseSnapshot,
              params: Mapping[str, 'RuntimeValue']) -> None:  # noqa: ARG001
    """Response time checker."""
    try:
        limit = parse_duration(assertion.value)
    except ValueError:
        raise DSLRuntimeError(f'invalid duration in assertion: {assertion.value}') from None

    if response.duration > limit:
        raise AssertionFailure(
            f'duration assertion failed: expected < {format_duration(limit)}, '
            f'got {format_duration(response.duration)}',
        )


def _canonical(value: 'RuntimeValue') -> 'RuntimeValue':
    """Normalize a decoded JSON value for canonical serialization."""
    if isinstance(value, float) and value.is_integer():
        return int(value)

    if isinstance(value, MAPPINGS):
        return {key: _canonical(item) for key, item in value.items()}

    if isinstance(value, SEQUENCES):
        return [_canonical(item) for item in value]

    return value


def _dump_canonical(value: 'RuntimeValue') -> str:
    """Serialize a decoded JSON value with sorted keys and no whitespace."""
    return dumps(_canonical(value), sort_keys=True, separators=(',', ':'), ensure_ascii=False)


def _body_matches_file(assertion: Assertion, response: ResponseSnapshot,
                       params: Mapping[str, 'RuntimeValue']) -> None:  # noqa: ARG001
    """Whole body checker against an expected file.

    JSON files are compared canonically (key order and formatting are
    ignored); any other file is compared byte for byte.
    """
    path = Path(assertion.value)
    mismatch = f"body matches file assertion failed: response does not match file '{path}'"

    try:
        expected_content = path.read_bytes()
    except OSError as base:
        raise FileAccessError(
            f"body matches file assertion failed: could not read file '{path}': {base}",
            path=path,
        ) from base

    try:
        expected = loads(expected_content)
    except (JSONDecodeError, UnicodeDecodeError):
        if response.content != expected_content:
            raise AssertionFailure(mismatch) from None
        return

    try:
        actual = loads(response.content)
    except (JSONDecodeError, UnicodeDecodeError):
        raise AssertionFailure('body matches file assertion failed: response is not valid JSON') from None

    if _dump_canonical(actual) != _dump_canonical(expected):
        raise AssertionFailure(mismatch)


def _body_partial_match(assertion: Assertion, response: ResponseSnapshot,
                        params: Mapping[str, 'RuntimeValue']) -> None:  # noqa: ARG001
    """Marked fragments checker.

    Every fragment line is parsed as the content of a JSON object, and
    each of its keys is extracted from the response and compared.
    """
    document = response.document
    if document is None:
        raise AssertionFailure('body partial match assertion failed: response is not valid JSON')

    for raw in assertion.value.split('\n'):
        line = raw.strip().removesuffix(',')
        if not line:
            continue

        try:
            fragment = loads(f'{{{line}}}')
        except JSONDecodeError as base:
            raise DSLRuntimeError(
                f"body partial match assertion failed: invalid JSON line '{line}': {base}",
            ) from base

        for field, expected in fragment.items():
            try:
                actual = extract(document, field)
            except FieldLookupError as base:
                raise AssertionFailure(f'body partial match assertion failed: {base.message}') from base

            if not values_equal(actual, expected):
                raise AssertionFailure(
                    f"body partial match assertion failed: field '{field}' "
                    f'expected {stringify(expected)}, got {stringify(actual)}',
                )


CHECKERS: dict[AssertionKind, Checker] = {
    AssertionKind.STATUS: _status,
    AssertionKind.BODY_CONTAINS: _body_contains,
    AssertionKind.FIELD_EQUALS: _field_equals,
    AssertionKind.DURATION: _duration,
    AssertionKind.BODY_MATCHES_FILE: _body_matches_file,
    AssertionKind.BODY_PARTIAL_MATCH: _body_partial_match,
}


def check(assertion: Assertion, response: ResponseSnapshot,
          params: Mapping[str, 'RuntimeValue'] | None = None) -> None:
    """Evaluate a single assertion.

    Args:
        assertion: Compiled assertion.
        response: Captured response of the final attempt.
        params: Runtime parameters (for example `preview_limit`).

    Raises:
        AssertionFailure: If the response does not satisfy the assertion.
        FileAccessError: If a referenced file cannot be read.
        DSLRuntimeError: If the assertion cannot be evaluated.
    """
    CHECKERS[assertion.kind](assertion, response, params or {})


def validate(assertions: Iterable[Assertion], response: ResponseSnapshot,
             params: Mapping[str, 'RuntimeValue'] | None = None) -> None:
    """Evaluate assertions in declared order, stopping at the first failure.

    Args:
        assertions: Compiled assertions of a test.
        response: Captured response of the final attempt.
        params: Runtime parameters (for example `preview_limit`).

    Raises:
        DSLRuntimeError: The first failure encountered.
    """
    for assertion in assertions:
        check(assertion, response, params)
