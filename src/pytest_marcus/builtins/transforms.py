"""Built-in transforms applied to extracted fields.

A transform chain (`field | t1 | t2`) is applied to the stringified
actual value before comparison or presence checks. Unknown transform
names are hard errors.
"""

from base64 import b64decode
from binascii import Error as BinasciiError
from collections.abc import Callable, Iterable

from pytest_marcus.errors import DSLRuntimeError

#: A transform receives text and returns transformed text.
type Transform = Callable[[str], str]

_URL_SAFE_ALTCHARS = b'-_'


def _decode(value: str, altchars: bytes | None, *, padded: bool) -> bytes:
    """Decode a single base64 variant strictly."""
    if not padded:
        if '=' in value:
            raise BinasciiError('unexpected padding')
        value += '=' * (-len(value) % 4)

    return b64decode(value, altchars=altchars, validate=True)


def base64(value: str) -> str:
    """Decode base64 text.

    Standard, URL-safe, raw standard, and raw URL-safe alphabets are
    tried in order; the first successful decoding wins.

    Args:
        value: Encoded text.

    Returns:
        Decoded text (invalid UTF-8 sequences are replaced).

    Raises:
        DSLRuntimeError: If no variant can decode the value.
    """
    variants = (
        (None, True),
        (_URL_SAFE_ALTCHARS, True),
        (None, False),
        (_URL_SAFE_ALTCHARS, False),
    )

    for altchars, padded in variants:
        try:
            decoded = _decode(value, altchars, padded=padded)
        except (BinasciiError, ValueError):
            continue
        return decoded.decode('utf-8', errors='replace')

    raise DSLRuntimeError(f'base64 decode failed for value {value!r}')


TRANSFORMS: dict[str, Transform] = {
    'base64': base64,
}


def apply_transforms(value: str, names: Iterable[str]) -> str:
    """Apply a chain of named transforms in order.

    Args:
        value: Stringified field value.
        names: Transform names.

    Returns:
        The transformed text.

    Raises:
        DSLRuntimeError: If a transform is unknown or fails.
    """
    result = value
    for name in names:
        transform = TRANSFORMS.get(name)
        if transform is None:
            raise DSLRuntimeError(f'unknown transform: {name}')
        result = transform(result)

    return result
