"""Caregiver share router.

Owners share with caregivers either directly (the caregiver already has an
account) or through an emailed invitation token. Caregivers accept; owners
revoke. Revocation is the only way a share ends: there is no delete.
"""

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status

from careshare.core.auth import CurrentIdentity
from careshare.core.dependencies import get_grant_service
from careshare.models.records import ShareRecord
from careshare.schemas.shares import (
    AcceptInviteRequest,
    CreateShareRequest,
    CreateShareResponse,
    InviteCreatedResponse,
    InviteInfoResponse,
    InviteResponse,
    ShareResponse,
    UpdateShareRequest,
)
from careshare.services.grant_lifecycle import GrantLifecycleService
from careshare.services.pagination import MAX_PAGE_SIZE

router = APIRouter(prefix="/v1/shares", tags=["shares"])

HAS_MORE_HEADER = "X-Has-More"
NEXT_CURSOR_HEADER = "X-Next-Cursor"


@router.get("", response_model=list[ShareResponse])
async def list_shares(
    response: Response,
    current: CurrentIdentity,
    limit: int | None = Query(default=None),
    cursor: str | None = Query(default=None),
    service: GrantLifecycleService = Depends(get_grant_service),
) -> list[ShareResponse]:
    """Shares the caller owns or holds, newest first.

    ``limit`` above the maximum page size is capped. Paging state is
    returned in the ``X-Has-More`` and ``X-Next-Cursor`` headers.
    """
    if limit is not None:
        limit = min(limit, MAX_PAGE_SIZE)
    page = await service.list_shares(current.id, limit=limit, cursor=cursor)

    response.headers[HAS_MORE_HEADER] = "true" if page.has_more else "false"
    response.headers[NEXT_CURSOR_HEADER] = page.next_cursor
    return [ShareResponse.from_record(item.share, item.direction) for item in page.items]


@router.post(
    "",
    response_model=CreateShareResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_share(
    data: CreateShareRequest,
    current: CurrentIdentity,
    service: GrantLifecycleService = Depends(get_grant_service),
) -> CreateShareResponse:
    """Share directly when the email has an account, otherwise invite it."""
    result = await service.create_share(
        current.id, data.caregiver_email, data.role, data.message
    )
    if isinstance(result, ShareRecord):
        return CreateShareResponse(share=ShareResponse.from_record(result))
    return CreateShareResponse(
        invite=InviteResponse.from_record(result.invite),
        email_sent=result.email_sent,
    )


@router.post(
    "/invite",
    response_model=InviteCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def invite_caregiver(
    data: CreateShareRequest,
    current: CurrentIdentity,
    service: GrantLifecycleService = Depends(get_grant_service),
) -> InviteCreatedResponse:
    """Send an invitation whether or not the email has an account."""
    issued = await service.issue_invite(
        current.id, data.caregiver_email, data.role, data.message
    )
    return InviteCreatedResponse(
        invite=InviteResponse.from_record(issued.invite),
        email_sent=issued.email_sent,
    )


@router.get("/invites", response_model=list[InviteResponse])
async def list_incoming_invites(
    current: CurrentIdentity,
    service: GrantLifecycleService = Depends(get_grant_service),
) -> list[InviteResponse]:
    """Pending invitations addressed to the caller's email."""
    invites = await service.list_incoming_invites(current.id)
    return [InviteResponse.from_record(invite) for invite in invites]


@router.get("/my-invites", response_model=list[InviteResponse])
async def list_outgoing_invites(
    current: CurrentIdentity,
    service: GrantLifecycleService = Depends(get_grant_service),
) -> list[InviteResponse]:
    invites = await service.list_outgoing_invites(current.id)
    return [InviteResponse.from_record(invite) for invite in invites]


@router.get("/invite-info/{token}", response_model=InviteInfoResponse)
async def get_invite_info(
    token: str = Path(..., min_length=1, max_length=512),
    service: GrantLifecycleService = Depends(get_grant_service),
) -> InviteInfoResponse:
    """Public invitation preview. No identity required; the token is the secret."""
    preview = await service.get_invite_info(token)
    return InviteInfoResponse(
        owner_name=preview.owner_name,
        caregiver_email=preview.caregiver_email,
        status=preview.status,
        expires_at=preview.expires_at,
    )


@router.post("/accept/{token}", response_model=InviteResponse)
async def accept_invite(
    current: CurrentIdentity,
    token: str = Path(..., min_length=1, max_length=512),
    service: GrantLifecycleService = Depends(get_grant_service),
) -> InviteResponse:
    invite = await service.accept_by_token(token, current.id)
    return InviteResponse.from_record(invite)


@router.post("/accept-invite", response_model=ShareResponse)
async def accept_invite_legacy(
    data: AcceptInviteRequest,
    current: CurrentIdentity,
    service: GrantLifecycleService = Depends(get_grant_service),
) -> ShareResponse:
    """Older clients send either an invitation token or a share id."""
    share = await service.accept_by_share_id_or_token(
        data.token, current.id, allow_migration=True
    )
    return ShareResponse.from_record(share)


@router.post("/auto-accept")
async def auto_accept_invites(
    current: CurrentIdentity,
    service: GrantLifecycleService = Depends(get_grant_service),
) -> dict[str, int]:
    """Sign-up hook: accept every pending invitation sent to the caller's email."""
    accepted = await service.auto_accept_for_new_user(current.id, current.email)
    return {"accepted": accepted}


@router.get("/access/{owner_id}")
async def check_access(
    current: CurrentIdentity,
    owner_id: str = Path(..., min_length=1),
    service: GrantLifecycleService = Depends(get_grant_service),
) -> dict[str, bool]:
    """Whether the caller holds an accepted share from ``owner_id``."""
    return {"hasAccess": await service.has_access(current.id, owner_id)}


@router.patch("/revoke/{token}", response_model=InviteResponse)
async def revoke_invite(
    current: CurrentIdentity,
    token: str = Path(..., min_length=1, max_length=512),
    service: GrantLifecycleService = Depends(get_grant_service),
) -> InviteResponse:
    invite = await service.revoke_invite(token, current.id)
    return InviteResponse.from_record(invite)


@router.get("/{share_id}", response_model=ShareResponse)
async def get_share(
    share_id: str,
    current: CurrentIdentity,
    service: GrantLifecycleService = Depends(get_grant_service),
) -> ShareResponse:
    share = await service.get_share(share_id, current.id)
    return ShareResponse.from_record(share)


@router.patch("/{share_id}", response_model=ShareResponse)
async def update_share_status(
    share_id: str,
    data: UpdateShareRequest,
    current: CurrentIdentity,
    service: GrantLifecycleService = Depends(get_grant_service),
) -> ShareResponse:
    """Owner revokes, or the caregiver accepts a pending share."""
    share = await service.transition_status(share_id, current.id, data.status)
    return ShareResponse.from_record(share)


@router.delete("/{share_id}", status_code=status.HTTP_405_METHOD_NOT_ALLOWED)
async def delete_share(share_id: str) -> None:
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Shares cannot be deleted. Revoke the share instead.",
    )
