"""Tests for invitation message sanitization."""

import pytest

from careshare.services.sanitize import sanitize_message


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Hello there", "Hello there"),
        ("  padded  ", "padded"),
        ("<script>alert(1)</script>Hi", "alert(1)Hi"),
        ("&lt;b&gt;bold&lt;/b&gt;", "bold"),
        ("bell\x07 and null\x00", "bell and null"),
        ("line one\nline two", "line one\nline two"),
        ("a < b and c > d", "a < b and c > d"),
        ("&lt;!-- note --&gt;kept", "kept"),
    ],
)
def test_sanitizes(raw, expected):
    assert sanitize_message(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "<br/>", 42])
def test_empty_becomes_none(raw):
    assert sanitize_message(raw) is None


def test_truncates():
    assert sanitize_message("x" * 600) == "x" * 500
    assert sanitize_message("abc def", max_length=4) == "abc"
