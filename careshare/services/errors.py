"""Errors raised by the grant services.

Every user-visible failure is a ``GrantError`` carrying a stable
machine-readable code and a human-readable message. Infrastructure
failures are raised internally as ``StorageError`` or
``IdentityLookupError`` and converted to ``server_error`` at the service
boundary so no storage detail reaches the caller.
"""

from enum import Enum


class ErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_TRANSITION = "invalid_transition"
    INVITE_EXPIRED = "invite_expired"
    INVITE_REVOKED = "invite_revoked"
    INVITE_USED = "invite_used"
    EMAIL_MISMATCH = "email_mismatch"
    INVITE_EXISTS = "invite_exists"
    SHARE_EXISTS = "share_exists"
    INVALID_SHARE = "invalid_share"
    INVALID_CURSOR = "invalid_cursor"
    VALIDATION_FAILED = "validation_failed"
    UNAUTHENTICATED = "unauthenticated"
    SERVER_ERROR = "server_error"


class GrantError(Exception):
    """A tagged, caller-safe failure of a grant operation."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"<GrantError(code={self.code.value}, message={self.message!r})>"


class StorageError(Exception):
    """The grant store failed to read or write a document."""


class IdentityLookupError(Exception):
    """The identity service could not be reached or answered unexpectedly."""
