"""Tests for cursor pagination."""

import pytest

from careshare.services.errors import ErrorCode, GrantError
from careshare.services.pagination import decode_cursor, encode_cursor, paginate

ITEMS = [f"id{n}" for n in range(7)]


def _page(limit, cursor=None):
    return paginate(ITEMS, limit, cursor, key=lambda item: item)


def test_cursor_is_opaque():
    cursor = encode_cursor("p1_c9")
    assert "p1_c9" not in cursor
    assert "=" not in cursor
    assert decode_cursor(cursor) == "p1_c9"


def test_first_page():
    page = _page(3)
    assert page.items == ["id0", "id1", "id2"]
    assert page.has_more is True
    assert decode_cursor(page.next_cursor) == "id2"


def test_walks_every_item_once():
    collected, cursor = [], None
    while True:
        page = _page(3, cursor)
        collected += page.items
        if not page.has_more:
            break
        cursor = page.next_cursor
    assert collected == ITEMS
    assert page.next_cursor == ""


def test_exact_fit_has_no_more():
    page = paginate(ITEMS[:3], 3, None, key=lambda item: item)
    assert page.has_more is False
    assert page.next_cursor == ""


def test_unknown_cursor():
    with pytest.raises(GrantError) as exc_info:
        _page(3, encode_cursor("gone"))
    assert exc_info.value.code == ErrorCode.INVALID_CURSOR


def test_undecodable_cursor():
    with pytest.raises(GrantError) as exc_info:
        _page(3, "_w")  # decodes to a non-UTF-8 byte
    assert exc_info.value.code == ErrorCode.INVALID_CURSOR


@pytest.mark.parametrize("limit", [0, -1])
def test_limit_must_be_positive(limit):
    with pytest.raises(GrantError) as exc_info:
        _page(limit)
    assert exc_info.value.code == ErrorCode.VALIDATION_FAILED
