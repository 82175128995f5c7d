"""Assertion and save section compilers.

Both sections share the same layout: a header line (`Assert:` or
`Asserts:`, `Save:` or `Saves:`) followed by bullet lines. Scanning
stops at the first non-bullet line; blank lines are skipped and
bullets matching no grammar are silently ignored.

Assertion grammars, evaluated in order:

    - Status is 200
    - Body contains `field | base64`
    - Field `json.id` equals `42`
    - Duration less than 500ms      (or `Time less than 2s`)
    - Body matches file `expected.json`
    - Body partially matches:
      ```json
      {
      >>  "url": "https://example.com",
          "origin": "ignored"
      }
      ```

Save grammar:

    - Field `json.id` as `user_id`
"""

from logging import getLogger
from pathlib import Path
from re import DOTALL, MULTILINE
from re import compile as regexp
from typing import TYPE_CHECKING

from pytest_marcus.schema import Assertion, AssertionKind, SaveField

if TYPE_CHECKING:
    from collections.abc import Iterator
    from re import Pattern

logger = getLogger(__name__)

BULLET = '- '
FENCE = '```'
MARKER = '>>'

PARTIAL_MATCH_LINE = 'Body partially matches:'
STATUS_PREFIX = 'Status is '

ASSERT_HEADER = regexp(r'^Asserts?:[ \t\r]*$', MULTILINE)
SAVE_HEADER = regexp(r'^Saves?:[ \t\r]*$', MULTILINE)

BODY_CONTAINS_PATTERN = regexp(r'^Body contains `([^`]+)`')
FIELD_EQUALS_PATTERN = regexp(r'^Field `([^`]+)` equals `([^`]+)`')
DURATION_PATTERN = regexp(r'^(?:Duration|Time) less than (.+)$')
BODY_MATCHES_FILE_PATTERN = regexp(r'^Body matches file `([^`]+)`')
PARTIAL_BLOCK_PATTERN = regexp(r'^\s*```(?:json)?\s*\n(.+?)```', DOTALL)

SAVE_PATTERN = regexp(r'^Field `([^`]+)` as `([^`]+)`')


def resolve_path(path: str, base_dir: Path) -> Path:
    """Resolve a referenced file against the test file directory.

    Args:
        path: Path as written in the test file.
        base_dir: Directory of the test file.

    Returns:
        The path itself when absolute, otherwise joined to `base_dir`.
    """
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate

    return base_dir / candidate


def _section_lines(content: str, header: 'Pattern[str]') -> list[str] | None:
    """Return the lines following a section header, if present."""
    match = header.search(content)
    if not match:
        return None

    return content[match.end():].split('\n')


def _bullets(lines: list[str]) -> 'Iterator[tuple[int, str]]':
    """Iterate over leading bullet lines, without the bullet prefix.

    Yields:
        Tuples of the line index and the bullet text.
    """
    for index, line in enumerate(lines):
        trimmed = line.strip()
        if not trimmed:
            continue
        if not trimmed.startswith(BULLET):
            return
        yield index, trimmed.removeprefix(BULLET)


def _marked_lines(block: str) -> list[str]:
    """Extract lines marked with `>>` from a partial-match code block."""
    marked = []
    for line in block.split('\n'):
        trimmed = line.strip()
        if not trimmed.startswith(MARKER):
            continue
        fragment = trimmed.removeprefix(MARKER).strip().removesuffix(',').strip()
        if fragment:
            marked.append(fragment)

    return marked


def _skip_fenced_block(lines: list[str], start: int) -> int:
    """Return the index of the closing fence of the next code block.

    Args:
        lines: Section lines.
        start: Index of the line introducing the block.

    Returns:
        Index of the closing fence line, or `start` when no complete
        block follows.
    """
    opening = next(
        (index for index in range(start + 1, len(lines)) if FENCE in lines[index]),
        None,
    )
    if opening is None:
        return start

    return next(
        (index for index in range(opening + 1, len(lines)) if FENCE in lines[index]),
        start,
    )


def compile_assertion(line: str, base_dir: Path) -> Assertion | None:
    """Compile a single assertion bullet.

    `Body partially matches:` is handled by the section scanner because
    it spans a following code block.

    Args:
        line: Bullet text without the bullet prefix.
        base_dir: Directory of the test file.

    Returns:
        The compiled assertion, or `None` if no grammar matches.
    """
    if line.startswith(STATUS_PREFIX):
        return Assertion(kind=AssertionKind.STATUS, value=line.removeprefix(STATUS_PREFIX))

    if match := BODY_CONTAINS_PATTERN.match(line):
        return Assertion(kind=AssertionKind.BODY_CONTAINS, field=match.group(1))

    if match := FIELD_EQUALS_PATTERN.match(line):
        return Assertion(
            kind=AssertionKind.FIELD_EQUALS,
            field=match.group(1),
            value=match.group(2),
        )

    if match := DURATION_PATTERN.match(line):
        return Assertion(kind=AssertionKind.DURATION, value=match.group(1))

    if match := BODY_MATCHES_FILE_PATTERN.match(line):
        return Assertion(
            kind=AssertionKind.BODY_MATCHES_FILE,
            value=str(resolve_path(match.group(1), base_dir)),
        )

    return None


def parse_assertions(content: str, base_dir: Path) -> tuple[Assertion, ...]:
    """Compile the assertion section of a test block.

    Args:
        content: Full test block text.
        base_dir: Directory of the test file, used for file references.

    Returns:
        Assertions in declared order; empty without a section.
    """
    lines = _section_lines(content, ASSERT_HEADER)
    if lines is None:
        return ()

    assertions: list[Assertion] = []
    index = -1

    while (index := index + 1) < len(lines):
        trimmed = lines[index].strip()
        if not trimmed:
            continue
        if not trimmed.startswith(BULLET):
            break

        line = trimmed.removeprefix(BULLET)

        if line == PARTIAL_MATCH_LINE:
            remaining = '\n'.join(lines[index + 1:])
            if match := PARTIAL_BLOCK_PATTERN.match(remaining):
                if marked := _marked_lines(match.group(1)):
                    assertions.append(Assertion(
                        kind=AssertionKind.BODY_PARTIAL_MATCH,
                        value='\n'.join(marked),
                    ))
                index = _skip_fenced_block(lines, index)
            continue

        if assertion := compile_assertion(line, base_dir):
            assertions.append(assertion)
        else:
            logger.debug('Skipping unrecognized assertion %r', line)

    return tuple(assertions)


def parse_saves(content: str) -> tuple[SaveField, ...]:
    """Compile the save section of a test block.

    Args:
        content: Full test block text.

    Returns:
        Save directives in declared order; empty without a section.
    """
    lines = _section_lines(content, SAVE_HEADER)
    if lines is None:
        return ()

    saves = []
    for _, line in _bullets(lines):
        if match := SAVE_PATTERN.match(line):
            saves.append(SaveField(field=match.group(1), variable=match.group(2)))
        else:
            logger.debug('Skipping unrecognized save directive %r', line)

    return tuple(saves)
