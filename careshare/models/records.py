"""Share and invitation records.

A grant exists in two shapes. ``ShareRecord`` is the canonical grant,
stored in the ``shares`` collection under a key derived from the owner
and caregiver ids. ``InviteRecord`` is the token-addressed offer stored in
``shareInvites``; accepting it materializes a ShareRecord.

Records are stored as camelCase JSON documents with ISO-8601 timestamps.
Older invitation documents carry the recipient under ``inviteeEmail``
instead of ``caregiverEmail``; read it through ``recipient_email`` only.
"""

import secrets
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

SHARES_COLLECTION = "shares"
INVITES_COLLECTION = "shareInvites"
USER_ROLES_COLLECTION = "userRoles"

INVITATION_EXPIRY_DAYS = 7
TOKEN_BYTES = 32  # 256 bits of entropy


class GrantStatus(str, Enum):
    """Lifecycle status shared by shares and invitations.

    Shares never reach EXPIRED; only invitations expire.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    REVOKED = "revoked"
    EXPIRED = "expired"


TERMINAL_STATUSES = frozenset({GrantStatus.REVOKED, GrantStatus.EXPIRED})


class ShareRole(str, Enum):
    """Access level granted to the caregiver."""

    VIEWER = "viewer"


class ShareDirection(str, Enum):
    """How a listed share relates to the requesting party."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"


def utcnow() -> datetime:
    return datetime.now(UTC)


def normalize_email(value: Any) -> str:
    """Lowercase and trim an email; anything that is not a string becomes ''."""
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


def share_key(owner_id: str, caregiver_user_id: str) -> str:
    """Build the storage key of a share.

    The key is derived from the record's ids. Never build it anywhere else:
    when ``caregiver_user_id`` changes the share must move to a new key.
    """
    if not owner_id or not caregiver_user_id:
        raise ValueError("share key requires both owner and caregiver ids")
    return f"{owner_id}_{caregiver_user_id}"


def generate_invite_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def invite_expiry(created_at: datetime) -> datetime:
    return created_at + timedelta(days=INVITATION_EXPIRY_DAYS)


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a stored timestamp (datetime, ISO string, epoch millis) to UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value / 1000, tz=UTC)
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _str_or_none(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


@dataclass
class ShareRecord:
    """Canonical caregiver grant."""

    id: str
    owner_id: str
    caregiver_email: str
    caregiver_user_id: str | None = None
    owner_name: str = ""
    owner_email: str = ""
    role: ShareRole = ShareRole.VIEWER
    status: GrantStatus = GrantStatus.PENDING
    message: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    accepted_at: datetime | None = None

    def relocated_to(self, caregiver_user_id: str) -> "ShareRecord":
        """Copy of this record addressed to another caregiver id, at its new key."""
        return replace(
            self,
            id=share_key(self.owner_id, caregiver_user_id),
            caregiver_user_id=caregiver_user_id,
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "ownerId": self.owner_id,
            "ownerName": self.owner_name,
            "ownerEmail": self.owner_email,
            "caregiverUserId": self.caregiver_user_id,
            "caregiverEmail": self.caregiver_email,
            "role": self.role.value,
            "status": self.status.value,
            "message": self.message,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "acceptedAt": to_iso(self.accepted_at),
        }

    @classmethod
    def from_document(cls, doc_id: str, data: dict[str, Any]) -> "ShareRecord":
        return cls(
            id=doc_id,
            owner_id=data.get("ownerId") or "",
            owner_name=data.get("ownerName") or "",
            owner_email=data.get("ownerEmail") or "",
            caregiver_user_id=_str_or_none(data.get("caregiverUserId")),
            caregiver_email=normalize_email(data.get("caregiverEmail")),
            role=ShareRole(data.get("role") or ShareRole.VIEWER.value),
            status=GrantStatus(data.get("status") or GrantStatus.PENDING.value),
            message=data.get("message"),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
            accepted_at=parse_timestamp(data.get("acceptedAt")),
        )


@dataclass
class InviteRecord:
    """Token-addressed invitation to become a caregiver."""

    token: str
    owner_id: str
    owner_email: str = ""
    owner_name: str = ""
    caregiver_email: str | None = None
    invitee_email: str | None = None  # legacy field name
    caregiver_user_id: str | None = None
    role: ShareRole = ShareRole.VIEWER
    status: GrantStatus = GrantStatus.PENDING
    message: str | None = None
    created_at: datetime | None = None
    expires_at: datetime | None = None
    accepted_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def recipient_email(self) -> str:
        """Normalized recipient email, from the current or the legacy field."""
        return normalize_email(self.caregiver_email or self.invitee_email)

    def is_past_expiry(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def to_document(self) -> dict[str, Any]:
        document = {
            "ownerId": self.owner_id,
            "ownerEmail": self.owner_email,
            "ownerName": self.owner_name,
            "caregiverEmail": self.recipient_email or None,
            "caregiverUserId": self.caregiver_user_id,
            "role": self.role.value,
            "status": self.status.value,
            "message": self.message,
            "createdAt": to_iso(self.created_at),
            "expiresAt": to_iso(self.expires_at),
            "acceptedAt": to_iso(self.accepted_at),
            "updatedAt": to_iso(self.updated_at),
        }
        if self.invitee_email is not None:
            document["inviteeEmail"] = self.invitee_email
        return document

    @classmethod
    def from_document(cls, token: str, data: dict[str, Any]) -> "InviteRecord":
        return cls(
            token=token,
            owner_id=data.get("ownerId") or "",
            owner_email=data.get("ownerEmail") or "",
            owner_name=data.get("ownerName") or "",
            caregiver_email=_str_or_none(data.get("caregiverEmail")),
            invitee_email=_str_or_none(data.get("inviteeEmail")),
            caregiver_user_id=_str_or_none(data.get("caregiverUserId")),
            role=ShareRole(data.get("role") or ShareRole.VIEWER.value),
            status=GrantStatus(data.get("status") or GrantStatus.PENDING.value),
            message=data.get("message"),
            created_at=parse_timestamp(data.get("createdAt")),
            expires_at=parse_timestamp(data.get("expiresAt")),
            accepted_at=parse_timestamp(data.get("acceptedAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )
