# Database models and grant records
from careshare.models.base import Base, TimestampMixin
from careshare.models.grant_document import GrantDocument
from careshare.models.records import (
    INVITES_COLLECTION,
    SHARES_COLLECTION,
    USER_ROLES_COLLECTION,
    GrantStatus,
    InviteRecord,
    ShareDirection,
    ShareRecord,
    ShareRole,
    share_key,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "GrantDocument",
    "GrantStatus",
    "InviteRecord",
    "ShareDirection",
    "ShareRecord",
    "ShareRole",
    "share_key",
    "SHARES_COLLECTION",
    "INVITES_COLLECTION",
    "USER_ROLES_COLLECTION",
]
