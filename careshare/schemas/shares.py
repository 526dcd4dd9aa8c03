"""Share and invitation request/response schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from careshare.models.records import (
    GrantStatus,
    InviteRecord,
    ShareDirection,
    ShareRecord,
    ShareRole,
)
from careshare.services.sanitize import MESSAGE_MAX_LENGTH


class CamelModel(BaseModel):
    """Serialized with the camelCase field names the stored documents use."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateShareRequest(CamelModel):
    """Body of both the legacy create and the unified invite endpoints."""

    caregiver_email: EmailStr
    role: ShareRole = ShareRole.VIEWER
    # Oversized messages are truncated during sanitization, not rejected
    message: str | None = Field(default=None, max_length=MESSAGE_MAX_LENGTH * 4)


class UpdateShareRequest(CamelModel):
    status: Literal["accepted", "revoked"]


class AcceptInviteRequest(CamelModel):
    """Legacy accept body: an invitation token or a share id."""

    token: str = Field(..., min_length=1, max_length=512)


class ShareResponse(CamelModel):
    """A share as seen by one of its parties."""

    id: str
    owner_id: str
    owner_name: str
    owner_email: str
    caregiver_user_id: str | None
    caregiver_email: str
    role: ShareRole
    status: GrantStatus
    message: str | None = None
    created_at: datetime | None
    updated_at: datetime | None
    accepted_at: datetime | None
    type: ShareDirection | None = None

    @classmethod
    def from_record(
        cls, share: ShareRecord, direction: ShareDirection | None = None
    ) -> "ShareResponse":
        return cls(
            id=share.id,
            owner_id=share.owner_id,
            owner_name=share.owner_name,
            owner_email=share.owner_email,
            caregiver_user_id=share.caregiver_user_id,
            caregiver_email=share.caregiver_email,
            role=share.role,
            status=share.status,
            message=share.message,
            created_at=share.created_at,
            updated_at=share.updated_at,
            accepted_at=share.accepted_at,
            type=direction,
        )


class InviteResponse(CamelModel):
    """An invitation. ``id`` is the token."""

    id: str
    owner_id: str
    owner_name: str
    owner_email: str
    caregiver_email: str | None
    caregiver_user_id: str | None
    role: ShareRole
    status: GrantStatus
    message: str | None = None
    created_at: datetime | None
    expires_at: datetime | None
    accepted_at: datetime | None

    @classmethod
    def from_record(cls, invite: InviteRecord) -> "InviteResponse":
        return cls(
            id=invite.token,
            owner_id=invite.owner_id,
            owner_name=invite.owner_name,
            owner_email=invite.owner_email,
            caregiver_email=invite.recipient_email or None,
            caregiver_user_id=invite.caregiver_user_id,
            role=invite.role,
            status=invite.status,
            message=invite.message,
            created_at=invite.created_at,
            expires_at=invite.expires_at,
            accepted_at=invite.accepted_at,
        )


class InviteCreatedResponse(CamelModel):
    """Result of the unified invite endpoint."""

    invite: InviteResponse
    email_sent: bool


class CreateShareResponse(CamelModel):
    """Result of the legacy create endpoint: a share or an invitation."""

    share: ShareResponse | None = None
    invite: InviteResponse | None = None
    email_sent: bool = False


class InviteInfoResponse(CamelModel):
    """Public invitation preview for the sign-up page, no auth."""

    owner_name: str
    caregiver_email: str | None
    status: GrantStatus
    expires_at: datetime | None
