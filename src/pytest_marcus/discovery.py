"""Discovery of markdown test files.

A target is either a single file or a directory searched recursively
for `*.md` files. Files are returned sorted by path so that runs are
reproducible; files declaring no test are left out.
"""

from logging import getLogger
from pathlib import Path  # noqa: TC003
from typing import TYPE_CHECKING

from pytest_marcus.core import DocumentParser
from pytest_marcus.schema import TestFile  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = getLogger(__name__)

SUFFIX = '.md'


def discover(target: Path) -> list[Path]:
    """List markdown files of a target.

    Args:
        target: File or directory path.

    Returns:
        The file itself, or every `*.md` file below the directory
        sorted by path.

    Raises:
        FileNotFoundError: If the target does not exist.
    """
    if not target.exists():
        raise FileNotFoundError(f'No such file or directory: {str(target)!r}')

    if not target.is_dir():
        return [target]

    return sorted(
        (path for path in target.rglob(f'*{SUFFIX}') if path.is_file()),
        key=str,
    )


def load(paths: 'Iterable[Path]', parser: DocumentParser | None = None, *,
         skip_empty: bool = True) -> tuple[TestFile, ...]:
    """Parse discovered test files.

    Args:
        paths: Files to parse, in run order.
        parser: Document parser; a default one is used when omitted.
        skip_empty: Leave out files declaring no test.

    Returns:
        Parsed files in the given order.

    Raises:
        OSError: If a file cannot be read.
        DSLSchemaError: If a file holds an invalid test.
    """
    parser = parser or DocumentParser()

    files = []
    for path in paths:
        file = parser.parse_file(path)
        if skip_empty and not file.tests:
            logger.debug('No tests found in %s', path)
            continue
        files.append(file)

    return tuple(files)
