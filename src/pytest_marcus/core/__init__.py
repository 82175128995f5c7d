"""Markdown DSL parser.

This module defines the infrastructure turning markdown test files into
immutable test definitions.

It provides:
- extraction of per-file defaults from frontmatter;
- compilation of assertion and save sections;
- parsing of `##` sections into request definitions.

The primary public entry point is `DocumentParser`, which parses text
or files into `TestDefinition` models.
"""

from .frontmatter import parse_frontmatter
from .parser import DocumentParser, resolve_url
from .sections import compile_assertion, parse_assertions, parse_saves

__all__ = (
    'DocumentParser',
    'compile_assertion',
    'parse_assertions',
    'parse_frontmatter',
    'parse_saves',
    'resolve_url',
)
