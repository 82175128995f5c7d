"""Markdown DSL parser.

This module defines the parser turning markdown test files into
immutable test definitions. A file is split on `##` headings; each
section describes one HTTP test:

    ## Create user
    POST /users
    - Authorization: Bearer {{token}}
    - Wait until status is 201
    - Retry 5 times every 500ms

    ```json
    {"name": "alice"}
    ```

    Asserts:
    - Status is 201
    - Field `json.name` equals `alice`

    Save:
    - Field `json.id` as `user_id`

The grammar is tolerant: lines matching no rule are ignored rather than
reported, and option scanning stops at the first line after the request
line that is neither blank nor a recognized option or header.
"""

from logging import getLogger
from pathlib import Path
from re import DOTALL, IGNORECASE, MULTILINE
from re import compile as regexp
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from pytest_marcus.errors import DSLSchemaError
from pytest_marcus.schema import (
    CONTENT_TYPE_HEADER,
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    Defaults,
    TestDefinition,
    TestFile,
)
from pytest_marcus.values import parse_duration

from .frontmatter import parse_frontmatter
from .sections import parse_assertions, parse_saves, resolve_path

if TYPE_CHECKING:
    from datetime import timedelta

logger = getLogger(__name__)

FILE_PREFIX = 'FILE:'

HEADING_PATTERN = regexp(r'^## (.+)$', MULTILINE)
REQUEST_PATTERN = regexp(r'^(GET|POST|PUT|PATCH|DELETE)\s+(\S+)')

WAIT_STATUS_PATTERN = regexp(r'^-\s+Wait until status is (\d+)$', IGNORECASE)
WAIT_FIELD_PATTERN = regexp(r'^-\s+Wait until field `([^`]+)` equals `([^`]+)`$', IGNORECASE)
RETRY_PATTERN = regexp(r'^-\s+Retry (\d+) times every (.+)$', IGNORECASE)
HEADER_PATTERN = regexp(r'^-\s+([^:]+):\s*(.+)$')

BODY_PATTERN = regexp(r'```(json|form)\s*\n(.+?)```', DOTALL)

BODY_CONTENT_TYPES = {
    'json': JSON_CONTENT_TYPE,
    'form': FORM_CONTENT_TYPE,
}

ABSOLUTE_PREFIXES = ('http://', 'https://')


def is_content_type(name: str) -> bool:
    """Tell whether a header name is `Content-Type`, ignoring case."""
    return name.casefold() == CONTENT_TYPE_HEADER.casefold()


def resolve_url(target: str, root: str) -> str:
    """Resolve a request target against the file root.

    Args:
        target: Target as written on the request line.
        root: Root URL from frontmatter, without trailing slash.

    Returns:
        The resolved URL. A relative target without a root is returned
        verbatim and fails when the request is sent.
    """
    if target.startswith('/') and root:
        return root + target

    if target.startswith(ABSOLUTE_PREFIXES):
        return target

    if root:
        return f'{root}/{target}'

    return target


class DocumentParser:
    """Parser for markdown test documents.

    The parser is stateless; a single instance may be shared by the
    command line, the pytest collector, and tests.
    """

    def parse(self, content: str, base_dir: Path | None = None) -> tuple[TestDefinition, ...]:
        """Parse markdown text into test definitions.

        Args:
            content: Raw file text, with optional frontmatter.
            base_dir: Directory used to resolve referenced files.

        Returns:
            Test definitions in document order. Sections without a
            request line are dropped.

        Raises:
            DSLSchemaError: If a parsed section violates the data model.
        """
        if base_dir is None:
            base_dir = Path()

        defaults, content = parse_frontmatter(content)
        headings = list(HEADING_PATTERN.finditer(content))

        tests = []
        for position, heading in enumerate(headings):
            end = headings[position + 1].start() if position + 1 < len(headings) else len(content)
            block = content[heading.end():end]

            test = self.parse_block(heading.group(1).strip(), block, defaults, base_dir)
            if test is not None:
                tests.append(test)

        return tuple(tests)

    def parse_file(self, path: Path) -> TestFile:
        """Read and parse a markdown test file.

        Args:
            path: Path to the markdown file.

        Returns:
            The file with its tests.

        Raises:
            OSError: If the file cannot be read.
            DSLSchemaError: If a parsed section violates the data model.
        """
        content = path.read_text(encoding='utf-8')

        try:
            tests = self.parse(content, path.parent)

        except DSLSchemaError as error:
            raise error.with_context({'filename': str(path)}) from None

        return TestFile(path=path, tests=tests)

    def parse_block(self, name: str, content: str, defaults: Defaults,
                    base_dir: Path) -> TestDefinition | None:
        """Parse a single `##` section.

        Args:
            name: Heading text.
            content: Section text following the heading.
            defaults: File-level defaults.
            base_dir: Directory used to resolve referenced files.

        Returns:
            The test definition, or `None` without a request line.

        Raises:
            DSLSchemaError: If the section violates the data model.
        """
        lines = content.split('\n')

        request = next(
            ((index, match) for index, line in enumerate(lines) if (match := REQUEST_PATTERN.match(line))),
            None,
        )
        if request is None:
            logger.debug('Section %r has no request line, skipping it', name)
            return None

        index, match = request

        headers = dict(defaults.headers)
        options = self.scan_options(lines[index + 1:], headers)

        content_type = next(
            (value for key, value in headers.items() if is_content_type(key)),
            '',
        )

        body = ''
        if body_match := BODY_PATTERN.search(content):
            kind, body = body_match.group(1), self.load_body(body_match.group(2), base_dir)
            content_type = content_type or BODY_CONTENT_TYPES[kind]

        data = {
            'name': name,
            'method': match.group(1),
            'url': resolve_url(match.group(2), defaults.root),
            'headers': headers,
            'body': body,
            'content_type': content_type,
            'assertions': parse_assertions(content, base_dir),
            'saves': parse_saves(content),
            'base_dir': base_dir,
            **options,
        }

        try:
            return TestDefinition.model_validate(data)

        except ValidationError as base:
            raise DSLSchemaError.from_pydantic_error(
                base,
                data={key: value for key, value in data.items() if key != 'assertions'},
                test_name=name,
            ) from base

    @staticmethod
    def scan_options(lines: list[str], headers: dict[str, str]) -> dict[str, Any]:
        """Scan option and header bullets following the request line.

        Each non-blank line is classified, in priority order, as a
        wait-for-status directive, a wait-for-field directive, a retry
        directive, or a header assignment. The first line matching none
        of them ends the scan, even if later lines look like options.

        Args:
            lines: Lines following the request line.
            headers: Header mapping updated in-place; per-test headers
                override defaults of the same name, ignoring case.

        Returns:
            Keyword data for the `wait` and `retry` fields of a test.
        """
        wait: dict[str, Any] = {}
        retry: dict[str, Any] = {}

        for raw in lines:
            line = raw.rstrip()
            if not line.strip():
                continue

            if match := WAIT_STATUS_PATTERN.match(line):
                if status := int(match.group(1)):
                    wait['status'] = status
                continue

            if match := WAIT_FIELD_PATTERN.match(line):
                wait['field'], wait['value'] = match.group(1), match.group(2)
                continue

            if match := RETRY_PATTERN.match(line):
                if attempts := int(match.group(1)):
                    retry['attempts'] = attempts
                if delay := _parse_delay(match.group(2)):
                    retry['delay'] = delay
                continue

            if match := HEADER_PATTERN.match(line):
                name = match.group(1).strip()
                for key in [key for key in headers if key.lower() == name.lower()]:
                    del headers[key]
                headers[name] = match.group(2).strip()
                continue

            break

        return {'wait': wait, 'retry': retry}

    @staticmethod
    def load_body(content: str, base_dir: Path) -> str:
        """Return body text, substituting `FILE:` references.

        An unreadable file leaves the literal reference in place; the
        request then fails downstream instead of at parse time.

        Args:
            content: Code block content.
            base_dir: Directory used to resolve relative paths.

        Returns:
            Body text.
        """
        body = content.strip()
        if not body.startswith(FILE_PREFIX):
            return body

        path = resolve_path(body.removeprefix(FILE_PREFIX).strip(), base_dir)
        try:
            return path.read_bytes().decode('utf-8', errors='replace')

        except OSError as error:
            logger.debug('Can not read body file %s: %s', path, error)
            return body


def _parse_delay(value: str) -> 'timedelta | None':
    """Parse a retry delay, ignoring invalid or non-positive values."""
    try:
        delay = parse_duration(value)
    except ValueError:
        return None

    return delay if delay.total_seconds() > 0 else None
