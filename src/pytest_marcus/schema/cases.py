"""Test definitions parsed from markdown files.

Defines immutable Pydantic models describing a single HTTP test, the
file-level defaults taken from frontmatter, and the options steering the
polling behavior of the execution engine.
"""

from datetime import timedelta  # noqa: TC003
from pathlib import Path
from typing import Literal

from pydantic import Field, PositiveInt

from pytest_marcus.models import SchemaModel

from .checks import Assertion  # noqa: TC001

#: HTTP methods accepted on a request line.
type Method = Literal['GET', 'POST', 'PUT', 'PATCH', 'DELETE']

CONTENT_TYPE_HEADER = 'Content-Type'

JSON_CONTENT_TYPE = 'application/json'
FORM_CONTENT_TYPE = 'application/x-www-form-urlencoded'


class Defaults(SchemaModel):
    """Per-file defaults declared in frontmatter."""

    root: str = Field(
        default='',
        title='Root URL',
        description='Prefix for relative request paths, without trailing slash.',
    )

    headers: dict[str, str] = Field(
        default_factory=dict,
        title='Default headers',
        description='Headers sent with every test of the file unless overridden.',
    )


class SaveField(SchemaModel):
    """Directive storing a response field into the variable store."""

    field: str = Field(
        title='Field path',
        description='Dot-separated path into the JSON response.',
    )

    variable: str = Field(
        title='Variable name',
        description='Name under which the value is stored for later tests.',
    )


class WaitCondition(SchemaModel):
    """Polling criteria gating progression to validation.

    When both a status and a field are set, both must hold at once.
    """

    status: int | None = Field(
        default=None,
        title='Awaited status',
        description='Status code the response must have.',
    )

    field: str | None = Field(
        default=None,
        title='Awaited field',
        description='Dot-separated path of a JSON field that must match `value`.',
    )

    value: str = Field(
        default='',
        title='Awaited value',
        description='Expected-value literal of the awaited field.',
    )

    @property
    def active(self) -> bool:
        """Whether any condition is configured."""
        return self.status is not None or self.field is not None


class RetryPolicy(SchemaModel):
    """Polling cadence. Unset values fall back to runner settings."""

    delay: timedelta | None = Field(
        default=None,
        title='Retry delay',
        description='Delay between attempts.',
    )

    attempts: PositiveInt | None = Field(
        default=None,
        title='Max attempts',
        description='Maximum number of attempts before timing out.',
    )


class TestDefinition(SchemaModel):
    """Single HTTP test parsed from a `##` section.

    A definition is a read-only template: values may contain `{{name}}`
    placeholders that are interpolated into a fresh working copy on
    every attempt.
    """

    __test__ = False

    name: str = Field(
        title='Test name',
        description='Heading text of the test section.',
    )

    method: Method = 'GET'

    url: str = Field(
        title='Request URL',
        description='Resolved request URL, or the raw target when it cannot be resolved.',
    )

    headers: dict[str, str] = Field(default_factory=dict)

    body: str = ''

    content_type: str = ''

    assertions: tuple[Assertion, ...] = ()

    saves: tuple[SaveField, ...] = ()

    wait: WaitCondition = Field(default_factory=WaitCondition)

    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    base_dir: Path = Field(
        default=Path(),
        title='Base directory',
        description='Directory of the owning file, used to resolve referenced files.',
    )


class TestFile(SchemaModel):
    """Markdown file with its tests in document order."""

    __test__ = False

    path: Path
    tests: tuple[TestDefinition, ...] = ()
