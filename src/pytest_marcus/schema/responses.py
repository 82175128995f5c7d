"""Captured HTTP response of a single attempt.

The execution engine buffers every response into this immutable record
before evaluating wait conditions, assertions, and save directives, so
that none of them depends on the transport library.
"""

from datetime import timedelta  # noqa: TC003
from typing import Any

from pydantic import Field

from pytest_marcus.models import SchemaModel

PREVIEW_ELLIPSIS = '...'


class ResponseSnapshot(SchemaModel):
    """Buffered response with its measured duration."""

    status: int = Field(
        title='Status code',
        description='HTTP status code of the response.',
    )

    content: bytes = Field(
        default=b'',
        title='Raw body',
        description='Fully buffered response body.',
    )

    duration: timedelta = Field(
        title='Duration',
        description='Wall-clock time from sending the request to the end of the body.',
    )

    document: dict[str, Any] | None = Field(
        default=None,
        title='JSON document',
        description='Decoded body when it is a JSON object, otherwise `None`.',
    )

    @property
    def text(self) -> str:
        """Body decoded as UTF-8, invalid sequences replaced."""
        return self.content.decode('utf-8', errors='replace')

    def preview(self, limit: int) -> str:
        """Return the body truncated to `limit` characters.

        Args:
            limit: Maximum number of characters kept.

        Returns:
            The body text, with `...` appended when truncated.
        """
        text = self.text
        if len(text) > limit:
            return text[:limit] + PREVIEW_ELLIPSIS

        return text
