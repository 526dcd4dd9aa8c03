"""Plain-text sanitization for owner-supplied invitation messages."""

import html
import re

MESSAGE_MAX_LENGTH = 500

_TAG_RE = re.compile(r"<[A-Za-z/!][^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def sanitize_message(value: str | None, max_length: int = MESSAGE_MAX_LENGTH) -> str | None:
    """Reduce a message to trimmed plain text, or None if nothing is left.

    Entities are unescaped before tags are stripped so encoded markup
    cannot survive as a tag.
    """
    if not isinstance(value, str):
        return None
    text = html.unescape(value)
    text = _TAG_RE.sub("", text)
    text = _CONTROL_RE.sub("", text)
    text = text.strip()[:max_length].rstrip()
    return text or None
