"""Assertion definitions for DSL expectations.

This module defines the declarative record produced by the assertion
compiler. The expected value is kept as raw text: its type is resolved
at validation time, not at parse time.
"""

from enum import StrEnum

from pydantic import Field

from pytest_marcus.models import SchemaModel

#: Separator between a field path and its transform chain.
TRANSFORM_SEPARATOR = '|'


class AssertionKind(StrEnum):
    """Kinds of assertions understood by the validator."""

    STATUS = 'status'
    BODY_CONTAINS = 'body_contains'
    FIELD_EQUALS = 'field_equals'
    DURATION = 'duration'
    BODY_MATCHES_FILE = 'body_matches_file'
    BODY_PARTIAL_MATCH = 'body_partial_match'


class Assertion(SchemaModel):
    """Single assertion evaluated against the final response of a test.

    The meaning of `value` depends on the kind:
        - `status`: expected status code token;
        - `field_equals`: expected-value literal;
        - `duration`: maximum duration, for example `500ms`;
        - `body_matches_file`: resolved path to the expected body file;
        - `body_partial_match`: newline-joined JSON fragments.
    """

    kind: AssertionKind = Field(
        title='Assertion kind',
        description='Which property of the response is validated.',
    )

    field: str | None = Field(
        default=None,
        title='Field path',
        description=(
            'Dot-separated path into the JSON response, optionally followed '
            'by a pipe-separated transform chain (for example `token | base64`).'
        ),
    )

    value: str = Field(
        default='',
        title='Expected value',
        description='Raw expected-value text, interpreted per assertion kind.',
    )

    @property
    def path(self) -> str:
        """Field path without the transform chain."""
        head, *_ = (self.field or '').split(TRANSFORM_SEPARATOR)
        return head.strip()

    @property
    def transforms(self) -> tuple[str, ...]:
        """Names of the transforms applied to the extracted field."""
        _, *tail = (self.field or '').split(TRANSFORM_SEPARATOR)
        return tuple(name.strip() for name in tail if name.strip())
