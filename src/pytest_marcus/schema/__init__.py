"""Declarative schema of markdown HTTP tests.

Defines immutable Pydantic models that describe parsed tests, their
assertions, save directives, and polling options. The module specifies
the structural contract between the parser and the execution engine.
"""

from .cases import (
    CONTENT_TYPE_HEADER,
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    Defaults,
    Method,
    RetryPolicy,
    SaveField,
    TestDefinition,
    TestFile,
    WaitCondition,
)
from .checks import Assertion, AssertionKind
from .responses import ResponseSnapshot

__all__ = (
    'CONTENT_TYPE_HEADER',
    'FORM_CONTENT_TYPE',
    'JSON_CONTENT_TYPE',
    'Assertion',
    'AssertionKind',
    'Defaults',
    'Method',
    'ResponseSnapshot',
    'RetryPolicy',
    'SaveField',
    'TestDefinition',
    'TestFile',
    'WaitCondition',
)
