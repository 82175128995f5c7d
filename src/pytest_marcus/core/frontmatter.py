"""Frontmatter extraction for markdown test files.

A file may start with a `---`-delimited block declaring per-file
defaults. Only two keys are understood:

    ---
    root: https://api.example.com/
    headers:
      Accept: application/json
    ---

Anything else in the block is ignored. A block without a closing
delimiter is not an error: defaults stay empty and the text is returned
unmodified.
"""

from logging import getLogger

from pytest_marcus.schema import Defaults

logger = getLogger(__name__)

DELIMITER = '---'

ROOT_KEY = 'root:'
HEADERS_KEY = 'headers:'

_INDENTS = ('  ', '\t')


def parse_frontmatter(content: str) -> tuple[Defaults, str]:
    """Split frontmatter defaults from the remaining text.

    Args:
        content: Raw file text.

    Returns:
        A tuple of the parsed defaults and the text following the
        closing delimiter (or the original text without a block).
    """
    stripped = content.strip()
    if not stripped.startswith(DELIMITER):
        return Defaults(), content

    lines = stripped.split('\n')
    if len(lines) < 2 or lines[0].strip() != DELIMITER:  # noqa: PLR2004
        return Defaults(), content

    closing = next(
        (index for index, line in enumerate(lines[1:], start=1) if line.strip() == DELIMITER),
        None,
    )
    if closing is None:
        logger.debug('Frontmatter is not closed, ignoring it')
        return Defaults(), content

    root = ''
    headers: dict[str, str] = {}
    in_headers = False

    for line in lines[1:closing]:
        trimmed = line.strip()
        if not trimmed:
            continue

        if trimmed.startswith(ROOT_KEY):
            root = trimmed.removeprefix(ROOT_KEY).strip().removesuffix('/')
            in_headers = False
            continue

        if trimmed == HEADERS_KEY:
            in_headers = True
            continue

        if in_headers and line.startswith(_INDENTS):
            key, separator, value = trimmed.partition(':')
            if separator:
                headers[key.strip()] = value.strip()
        else:
            in_headers = False

    remaining = '\n'.join(lines[closing + 1:])

    return Defaults(root=root, headers=headers), remaining
