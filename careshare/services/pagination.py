"""Cursor pagination over already-sorted lists.

The cursor is the id of the last item the caller received, wrapped in
URL-safe base64 so clients treat it as opaque.
"""

import base64
import binascii
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

from careshare.services.errors import ErrorCode, GrantError

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


@dataclass
class Page(Generic[T]):
    items: list[T]
    has_more: bool
    next_cursor: str  # empty when has_more is False


def encode_cursor(item_id: str) -> str:
    return base64.urlsafe_b64encode(item_id.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> str:
    """Recover the item id from a cursor.

    Raises:
        GrantError: invalid_cursor if the value is not a cursor we issued.
    """
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode()).decode()
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise GrantError(ErrorCode.INVALID_CURSOR, "Invalid cursor") from exc


def paginate(
    items: Sequence[T],
    limit: int,
    cursor: str | None,
    key: Callable[[T], str],
) -> Page[T]:
    """Return the page that follows ``cursor``.

    A cursor that does not name an item in ``items`` is an error rather
    than an empty page: it means the list changed under the caller.

    Raises:
        GrantError: invalid_cursor for an unknown cursor; validation_failed
            for a non-positive limit.
    """
    if limit <= 0:
        raise GrantError(ErrorCode.VALIDATION_FAILED, "limit must be a positive integer")

    start = 0
    if cursor:
        last_id = decode_cursor(cursor)
        ids = [key(item) for item in items]
        if last_id not in ids:
            raise GrantError(ErrorCode.INVALID_CURSOR, "Invalid cursor")
        start = ids.index(last_id) + 1

    window = list(items[start : start + limit])
    has_more = start + limit < len(items)
    next_cursor = encode_cursor(key(window[-1])) if has_more and window else ""
    return Page(items=window, has_more=has_more, next_cursor=next_cursor)
