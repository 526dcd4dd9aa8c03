"""Caregiver access-grant lifecycle.

Issues, accepts, revokes and expires grants between an owner (patient)
and a caregiver. A grant is held in two places: the canonical share in
``shares`` and, when the caregiver had no account at issuance, a
token-addressed invitation in ``shareInvites``. This service keeps the
two consistent without cross-document transactions: every mutation that
touches more than one document runs as a saga of idempotent steps, so
retrying a failed operation from the start converges on the same state.

State machine (shares and invites alike)::

    pending -> accepted -> revoked
    pending -> revoked
    pending -> expired        (invites only, detected lazily on read)

``revoked`` and ``expired`` are terminal.
"""

import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import ParamSpec, TypeVar

from careshare.logging_config import get_logger
from careshare.models.records import (
    INVITES_COLLECTION,
    SHARES_COLLECTION,
    TERMINAL_STATUSES,
    GrantStatus,
    InviteRecord,
    ShareDirection,
    ShareRecord,
    ShareRole,
    generate_invite_token,
    invite_expiry,
    normalize_email,
    share_key,
    to_iso,
    utcnow,
)
from careshare.services.email_dispatcher import EmailDispatcher
from careshare.services.errors import (
    ErrorCode,
    GrantError,
    IdentityLookupError,
    StorageError,
)
from careshare.services.grant_store import GrantStore
from careshare.services.identity import Identity, IdentityResolver
from careshare.services.lookup_cache import LookupCache
from careshare.services.pagination import DEFAULT_PAGE_SIZE, Page, paginate
from careshare.services.reconciler import migrated_share, reconcile
from careshare.services.roles import RoleGrantService
from careshare.services.saga import Saga
from careshare.services.sanitize import sanitize_message

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

_EARLIEST = datetime.min.replace(tzinfo=UTC)


def _server_errors(
    action: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Report infrastructure failures as a generic ``server_error``."""

    def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return await fn(*args, **kwargs)
            except (StorageError, IdentityLookupError) as exc:
                logger.error(
                    "Grant operation failed",
                    operation=fn.__name__,
                    error=str(exc),
                )
                raise GrantError(ErrorCode.SERVER_ERROR, f"Failed to {action}") from exc

        return wrapper

    return decorator


@dataclass
class ListedShare:
    share: ShareRecord
    direction: ShareDirection


@dataclass
class IssuedInvite:
    invite: InviteRecord
    email_sent: bool


@dataclass
class InvitePreview:
    """What an unauthenticated visitor may learn about an invitation."""

    owner_name: str
    caregiver_email: str | None
    status: GrantStatus
    expires_at: datetime | None


class GrantLifecycleService:
    """State machine over shares and invitations."""

    def __init__(
        self,
        store: GrantStore,
        identity: IdentityResolver,
        cache: LookupCache,
        roles: RoleGrantService,
        email: EmailDispatcher | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._identity = identity
        self._cache = cache
        self._roles = roles
        self._email = email
        self._clock = clock

    # ── Issuance ──

    @_server_errors("create share")
    async def create_share(
        self,
        owner_id: str,
        caregiver_email: str,
        role: ShareRole = ShareRole.VIEWER,
        message: str | None = None,
    ) -> ShareRecord | IssuedInvite:
        """Share directly with an existing account, or invite the email."""
        caregiver = await self._identity.by_email(normalize_email(caregiver_email))
        if caregiver is not None:
            return await self.issue_direct(
                owner_id, caregiver_email, role, message, caregiver=caregiver
            )
        return await self.issue_invite(owner_id, caregiver_email, role, message)

    @_server_errors("create share")
    async def issue_direct(
        self,
        owner_id: str,
        caregiver_email: str,
        role: ShareRole = ShareRole.VIEWER,
        message: str | None = None,
        caregiver: Identity | None = None,
    ) -> ShareRecord:
        """Create a pending share addressed to an existing caregiver account.

        Raises:
            GrantError: invalid_share, invite_exists, share_exists, or
                not_found when the email has no account.
        """
        email = normalize_email(caregiver_email)
        owner = await self._owner(owner_id)
        self._reject_self_share(owner, email)
        await self._reject_pending_invite(owner_id, email)

        if caregiver is None:
            caregiver = await self._identity.by_email(email)
        if caregiver is None:
            raise GrantError(ErrorCode.NOT_FOUND, "No account uses this email")
        if caregiver.id == owner_id:
            raise GrantError(ErrorCode.INVALID_SHARE, "You cannot share with yourself")

        share_id = share_key(owner_id, caregiver.id)
        existing = await self._load_share(share_id)
        if existing is not None and existing.status in (
            GrantStatus.PENDING,
            GrantStatus.ACCEPTED,
        ):
            raise GrantError(ErrorCode.SHARE_EXISTS, "Share already exists with this user")

        now = self._clock()
        share = ShareRecord(
            id=share_id,
            owner_id=owner_id,
            owner_name=_display_name(owner),
            owner_email=owner.normalized_email,
            caregiver_user_id=caregiver.id,
            caregiver_email=email,
            role=ShareRole(role),
            status=GrantStatus.PENDING,
            message=sanitize_message(message),
            created_at=now,
            updated_at=now,
        )
        # A revoked share at this key is overwritten, not merged
        await self._store.put(SHARES_COLLECTION, share.id, share.to_document())
        self._cache.invalidate(caregiver.id, owner_id)

        logger.info(
            "Created share for existing account",
            owner_id=owner_id,
            caregiver_id=caregiver.id,
            share_id=share.id,
            replaced_revoked=existing is not None,
        )
        return share

    @_server_errors("create invitation")
    async def issue_invite(
        self,
        owner_id: str,
        caregiver_email: str,
        role: ShareRole = ShareRole.VIEWER,
        message: str | None = None,
    ) -> IssuedInvite:
        """Create a token-addressed invitation and email the link.

        Raises:
            GrantError: invalid_share, invite_exists, share_exists.
        """
        email = normalize_email(caregiver_email)
        owner = await self._owner(owner_id)
        self._reject_self_share(owner, email)

        for doc in await self._store.query(
            SHARES_COLLECTION, {"ownerId": owner_id, "caregiverEmail": email}
        ):
            status = doc.data.get("status")
            if status == GrantStatus.ACCEPTED.value:
                raise GrantError(
                    ErrorCode.SHARE_EXISTS, "You are already sharing with this user"
                )
            if status == GrantStatus.PENDING.value:
                raise GrantError(
                    ErrorCode.INVITE_EXISTS,
                    "An invitation has already been sent to this email",
                )

        await self._reject_pending_invite(owner_id, email)

        now = self._clock()
        invite = InviteRecord(
            token=generate_invite_token(),
            owner_id=owner_id,
            owner_email=owner.normalized_email,
            owner_name=_display_name(owner),
            caregiver_email=email,
            role=ShareRole(role),
            status=GrantStatus.PENDING,
            message=sanitize_message(message),
            created_at=now,
            expires_at=invite_expiry(now),
        )
        await self._store.put(INVITES_COLLECTION, invite.token, invite.to_document())
        logger.info(
            "Created share invitation",
            owner_id=owner_id,
            expires_at=to_iso(invite.expires_at),
        )

        email_sent = await self._send_invite_email(invite)
        return IssuedInvite(invite=invite, email_sent=email_sent)

    # ── Acceptance ──

    @_server_errors("accept invitation")
    async def accept_by_token(self, token: str, acting_user_id: str) -> InviteRecord:
        """Accept an invitation as the signed-in caregiver.

        Accepting an already-accepted invitation returns it unchanged and
        writes nothing, so repeated submissions are harmless.

        Raises:
            GrantError: not_found, invite_expired, email_mismatch,
                invite_revoked.
        """
        invite = await self._load_invite(token)
        if invite is None:
            raise GrantError(ErrorCode.NOT_FOUND, "Invitation not found")

        invite = await self._expire_if_due(invite)
        if invite.status == GrantStatus.EXPIRED:
            raise GrantError(
                ErrorCode.INVITE_EXPIRED,
                "This invitation has expired. Please ask for a new invitation.",
            )

        acting_email = await self._email_of(acting_user_id)
        if not acting_email or acting_email != invite.recipient_email:
            logger.warning(
                "Invitation email mismatch",
                acting_user_id=acting_user_id,
                owner_id=invite.owner_id,
            )
            raise GrantError(
                ErrorCode.EMAIL_MISMATCH,
                "This invitation was sent to a different email address",
            )

        if invite.status == GrantStatus.ACCEPTED:
            return invite
        if invite.status == GrantStatus.REVOKED:
            raise GrantError(ErrorCode.INVITE_REVOKED, "This invitation has been revoked.")

        await self._accept_invite(invite, acting_user_id)
        return invite

    @_server_errors("accept invitation")
    async def accept_by_share_id_or_token(
        self,
        id_or_token: str,
        acting_user_id: str,
        allow_migration: bool = True,
    ) -> ShareRecord:
        """Accept by invitation token or, for older clients, by share id.

        A share addressed to another user id is taken over when the acting
        account has the same email and ``allow_migration`` is set.

        Raises:
            GrantError: not_found, forbidden, invalid_transition, plus the
                errors of ``accept_by_token``.
        """
        if await self._store.get(INVITES_COLLECTION, id_or_token) is not None:
            invite = await self.accept_by_token(id_or_token, acting_user_id)
            share = await self._load_share(
                share_key(invite.owner_id, invite.caregiver_user_id or acting_user_id)
            )
            if share is None:
                raise GrantError(ErrorCode.NOT_FOUND, "Invitation not found")
            return share

        share = await self._load_share(id_or_token)
        if share is None:
            raise GrantError(ErrorCode.NOT_FOUND, "Invitation not found")

        decision = reconcile(share, acting_user_id, await self._email_of(acting_user_id))
        if not decision.allow or (decision.migrate and not allow_migration):
            logger.warning(
                "Share acceptance denied",
                acting_user_id=acting_user_id,
                share_id=share.id,
            )
            raise GrantError(
                ErrorCode.FORBIDDEN, "You are not authorized to accept this invitation"
            )

        if share.status == GrantStatus.REVOKED:
            raise GrantError(
                ErrorCode.INVALID_TRANSITION, "This invitation cannot be accepted"
            )
        if decision.migrate:
            return await self._migrate_share(share, acting_user_id)
        if share.status == GrantStatus.ACCEPTED:
            return share
        return await self._accept_share(share)

    # ── Status changes ──

    @_server_errors("update share")
    async def transition_status(
        self,
        share_id: str,
        acting_user_id: str,
        new_status: GrantStatus | str,
    ) -> ShareRecord:
        """Apply an owner revoke or a caregiver accept to a share.

        Any other combination of actor, current status and requested
        status is ``invalid_transition``, whether or not the actor is a
        party to the share.

        Raises:
            GrantError: not_found, invalid_transition.
        """
        share = await self._load_share(share_id)
        if share is None:
            raise GrantError(ErrorCode.NOT_FOUND, "Share not found")

        try:
            target = GrantStatus(new_status)
        except ValueError:
            target = None

        if (
            acting_user_id == share.owner_id
            and target == GrantStatus.REVOKED
            and share.status not in TERMINAL_STATUSES
        ):
            return await self._revoke_share(share)

        if (
            share.caregiver_user_id
            and acting_user_id == share.caregiver_user_id
            and target == GrantStatus.ACCEPTED
            and share.status == GrantStatus.PENDING
        ):
            return await self._accept_share(share)

        raise GrantError(
            ErrorCode.INVALID_TRANSITION, "Invalid status transition for your role"
        )

    @_server_errors("revoke invitation")
    async def revoke_invite(self, token: str, acting_user_id: str) -> InviteRecord:
        """Revoke an invitation; an accepted one also revokes its share.

        Re-running on an already revoked invitation repeats the cascade,
        which finishes a revocation interrupted between the two writes.

        Raises:
            GrantError: not_found, forbidden, invalid_transition (expired).
        """
        invite = await self._load_invite(token)
        if invite is None:
            raise GrantError(ErrorCode.NOT_FOUND, "Invitation not found")
        if invite.owner_id != acting_user_id:
            raise GrantError(
                ErrorCode.FORBIDDEN, "Only the owner can revoke this invitation"
            )

        invite = await self._expire_if_due(invite)
        if invite.status == GrantStatus.EXPIRED:
            raise GrantError(ErrorCode.INVALID_TRANSITION, "This invitation has expired")

        now = self._clock()
        already_revoked = invite.status == GrantStatus.REVOKED

        async def revoke_invitation() -> None:
            if already_revoked:
                return
            await self._store.put(
                INVITES_COLLECTION,
                invite.token,
                {"status": GrantStatus.REVOKED.value, "updatedAt": to_iso(now)},
                merge=True,
            )

        async def revoke_share() -> None:
            if not invite.caregiver_user_id:
                return
            share = await self._load_share(
                share_key(invite.owner_id, invite.caregiver_user_id)
            )
            if share is None or share.status == GrantStatus.REVOKED:
                return
            await self._store.put(
                SHARES_COLLECTION,
                share.id,
                {"status": GrantStatus.REVOKED.value, "updatedAt": to_iso(now)},
                merge=True,
            )
            logger.info("Revoked share for revoked invitation", share_id=share.id)

        async def invalidate() -> None:
            if invite.caregiver_user_id:
                self._cache.invalidate(invite.caregiver_user_id, invite.owner_id)

        await (
            Saga("revoke_invite")
            .step("revoke_invitation", revoke_invitation)
            .step("revoke_share", revoke_share)
            .step("invalidate_cache", invalidate)
            .execute()
        )

        if not already_revoked:
            invite.status = GrantStatus.REVOKED
            invite.updated_at = now
        logger.info("Owner revoked invitation", owner_id=acting_user_id)
        return invite

    # ── Reads ──

    @_server_errors("fetch shares")
    async def list_shares(
        self,
        party_id: str,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[ListedShare]:
        """Shares the party owns (outgoing) or holds (incoming).

        Ordered newest first, ties broken by id. Without ``limit`` or
        ``cursor`` the whole list is returned as one page.

        Raises:
            GrantError: invalid_cursor, validation_failed.
        """
        owned = await self._store.query(SHARES_COLLECTION, {"ownerId": party_id})
        held = await self._store.query(SHARES_COLLECTION, {"caregiverUserId": party_id})

        listed = [
            ListedShare(ShareRecord.from_document(d.id, d.data), ShareDirection.OUTGOING)
            for d in owned
        ] + [
            ListedShare(ShareRecord.from_document(d.id, d.data), ShareDirection.INCOMING)
            for d in held
        ]
        listed.sort(key=lambda item: item.share.id)
        listed.sort(key=lambda item: item.share.created_at or _EARLIEST, reverse=True)

        if limit is None and not cursor:
            return Page(items=listed, has_more=False, next_cursor="")
        return paginate(
            listed,
            limit if limit is not None else DEFAULT_PAGE_SIZE,
            cursor,
            key=lambda item: item.share.id,
        )

    @_server_errors("fetch share")
    async def get_share(self, share_id: str, acting_user_id: str) -> ShareRecord:
        """Raises GrantError not_found or forbidden (not a party)."""
        share = await self._load_share(share_id)
        if share is None:
            raise GrantError(ErrorCode.NOT_FOUND, "Share not found")
        if acting_user_id not in (share.owner_id, share.caregiver_user_id):
            raise GrantError(ErrorCode.FORBIDDEN, "You do not have access to this share")
        return share

    @_server_errors("fetch invitation")
    async def get_invite(self, token: str) -> InviteRecord:
        invite = await self._load_invite(token)
        if invite is None:
            raise GrantError(ErrorCode.NOT_FOUND, "Invitation not found")
        return await self._expire_if_due(invite)

    @_server_errors("fetch invitation")
    async def get_invite_info(self, token: str) -> InvitePreview:
        """Public preview of a pending invitation for the sign-up page.

        Raises:
            GrantError: not_found, invite_expired, invite_used.
        """
        invite = await self.get_invite(token)
        if invite.status == GrantStatus.EXPIRED:
            raise GrantError(ErrorCode.INVITE_EXPIRED, "This invitation has expired")
        if invite.status != GrantStatus.PENDING:
            raise GrantError(
                ErrorCode.INVITE_USED, "This invitation has already been used"
            )
        return InvitePreview(
            owner_name=invite.owner_name or "Someone",
            caregiver_email=invite.recipient_email or None,
            status=invite.status,
            expires_at=invite.expires_at,
        )

    @_server_errors("fetch invitations")
    async def list_incoming_invites(self, acting_user_id: str) -> list[InviteRecord]:
        """Pending invitations addressed to the acting user's email."""
        email = await self._email_of(acting_user_id)
        if not email:
            raise GrantError(
                ErrorCode.VALIDATION_FAILED,
                "User email is required to check for invitations",
            )
        invites = [
            invite
            for invite in await self._pending_invites_for(email)
            if invite.status == GrantStatus.PENDING
        ]
        return _newest_first(invites)

    @_server_errors("fetch invitations")
    async def list_outgoing_invites(self, owner_id: str) -> list[InviteRecord]:
        """Every invitation the owner has sent, newest first."""
        documents = await self._store.query(INVITES_COLLECTION, {"ownerId": owner_id})
        invites = [
            await self._expire_if_due(InviteRecord.from_document(d.id, d.data))
            for d in documents
        ]
        return _newest_first(invites)

    @_server_errors("process invitations")
    async def auto_accept_for_new_user(self, user_id: str, email: str) -> int:
        """Accept every pending invitation sent to a newly created account.

        Returns the number of invitations accepted. Expired ones are
        marked expired along the way.
        """
        normalized = normalize_email(email)
        if not normalized:
            logger.info("New user has no email, skipping invite check", user_id=user_id)
            return 0

        accepted = 0
        for invite in await self._pending_invites_for(normalized):
            if invite.status != GrantStatus.PENDING:
                continue
            await self._accept_invite(invite, user_id)
            accepted += 1

        logger.info("Auto-accepted invitations for new user", user_id=user_id, count=accepted)
        return accepted

    @_server_errors("fetch shares")
    async def accepted_shares_for_caregiver(self, caregiver_id: str) -> list[ShareRecord]:
        return await self._cache.accepted_shares(caregiver_id)

    @_server_errors("check access")
    async def has_access(self, caregiver_id: str, owner_id: str) -> bool:
        return await self._cache.has_access(caregiver_id, owner_id)

    # ── Sagas ──

    async def _accept_invite(self, invite: InviteRecord, user_id: str) -> None:
        """Materialize the share, then mark the invitation accepted.

        The share goes first: if the run stops after it, the invitation is
        still pending and a retry repeats both writes.
        """
        now = self._clock()
        email = invite.recipient_email
        share_id = share_key(invite.owner_id, user_id)

        async def upsert_share() -> None:
            existing = await self._load_share(share_id)
            created_at = existing.created_at if existing and existing.created_at else now
            share = ShareRecord(
                id=share_id,
                owner_id=invite.owner_id,
                owner_name=invite.owner_name,
                owner_email=invite.owner_email,
                caregiver_user_id=user_id,
                caregiver_email=email,
                role=invite.role,
                status=GrantStatus.ACCEPTED,
                message=sanitize_message(invite.message),
                created_at=created_at,
                updated_at=now,
                accepted_at=now,
            )
            await self._store.put(SHARES_COLLECTION, share_id, share.to_document(), merge=True)

        async def mark_invite_accepted() -> None:
            await self._store.put(
                INVITES_COLLECTION,
                invite.token,
                {
                    "status": GrantStatus.ACCEPTED.value,
                    "caregiverUserId": user_id,
                    "caregiverEmail": email,
                    "acceptedAt": to_iso(now),
                    "updatedAt": to_iso(now),
                },
                merge=True,
            )

        async def invalidate() -> None:
            self._cache.invalidate(user_id, invite.owner_id)

        async def grant_role() -> None:
            await self._roles.ensure_caregiver_role(user_id)

        await (
            Saga("accept_invite")
            .step("upsert_share", upsert_share)
            .step("mark_invite_accepted", mark_invite_accepted)
            .step("invalidate_cache", invalidate)
            .step("grant_caregiver_role", grant_role, required=False)
            .execute()
        )

        invite.status = GrantStatus.ACCEPTED
        invite.caregiver_user_id = user_id
        invite.caregiver_email = email
        invite.accepted_at = now
        invite.updated_at = now
        logger.info(
            "Caregiver accepted invitation",
            caregiver_id=user_id,
            owner_id=invite.owner_id,
            share_id=share_id,
        )

    async def _migrate_share(self, share: ShareRecord, user_id: str) -> ShareRecord:
        """Move a share to ``user_id``'s key and accept it.

        The relocated record is written before the stale one is deleted so
        the grant is never invisible to both identities.
        """
        now = self._clock()
        relocated = migrated_share(share, user_id, now)
        previous_caregiver = share.caregiver_user_id

        async def write_relocated() -> None:
            await self._store.put(SHARES_COLLECTION, relocated.id, relocated.to_document())

        async def repoint_invites() -> None:
            if not previous_caregiver or previous_caregiver == user_id:
                return
            for invite in await self._invites_for(
                share.caregiver_email, GrantStatus.ACCEPTED
            ):
                if (
                    invite.owner_id != share.owner_id
                    or invite.caregiver_user_id != previous_caregiver
                ):
                    continue
                await self._store.put(
                    INVITES_COLLECTION,
                    invite.token,
                    {"caregiverUserId": user_id, "updatedAt": to_iso(now)},
                    merge=True,
                )

        async def delete_stale() -> None:
            if share.id != relocated.id:
                await self._store.delete(SHARES_COLLECTION, share.id)

        async def invalidate() -> None:
            if previous_caregiver:
                self._cache.invalidate(previous_caregiver, share.owner_id)
            self._cache.invalidate(user_id, share.owner_id)

        async def grant_role() -> None:
            await self._roles.ensure_caregiver_role(user_id)

        await (
            Saga("migrate_share")
            .step("write_relocated_share", write_relocated)
            .step("repoint_accepted_invites", repoint_invites)
            .step("delete_stale_share", delete_stale)
            .step("invalidate_cache", invalidate)
            .step("grant_caregiver_role", grant_role, required=False)
            .execute()
        )

        logger.info(
            "Migrated share to new caregiver identity",
            from_share_id=share.id,
            to_share_id=relocated.id,
            previous_caregiver_id=previous_caregiver,
            caregiver_id=user_id,
        )
        return relocated

    async def _accept_share(self, share: ShareRecord) -> ShareRecord:
        now = self._clock()
        await self._store.put(
            SHARES_COLLECTION,
            share.id,
            {
                "status": GrantStatus.ACCEPTED.value,
                "acceptedAt": to_iso(now),
                "updatedAt": to_iso(now),
            },
            merge=True,
        )
        share.status = GrantStatus.ACCEPTED
        share.accepted_at = now
        share.updated_at = now

        if share.caregiver_user_id:
            self._cache.invalidate(share.caregiver_user_id, share.owner_id)
            try:
                await self._roles.ensure_caregiver_role(share.caregiver_user_id)
            except StorageError as exc:
                logger.warning(
                    "Caregiver role grant failed",
                    caregiver_id=share.caregiver_user_id,
                    error=str(exc),
                )

        logger.info(
            "Caregiver accepted share",
            caregiver_id=share.caregiver_user_id,
            share_id=share.id,
        )
        return share

    async def _revoke_share(self, share: ShareRecord) -> ShareRecord:
        now = self._clock()
        await self._store.put(
            SHARES_COLLECTION,
            share.id,
            {"status": GrantStatus.REVOKED.value, "updatedAt": to_iso(now)},
            merge=True,
        )
        share.status = GrantStatus.REVOKED
        share.updated_at = now
        if share.caregiver_user_id:
            self._cache.invalidate(share.caregiver_user_id, share.owner_id)

        logger.info("Owner revoked share", owner_id=share.owner_id, share_id=share.id)
        return share

    # ── Helpers ──

    async def _load_share(self, share_id: str) -> ShareRecord | None:
        document = await self._store.get(SHARES_COLLECTION, share_id)
        if document is None:
            return None
        return ShareRecord.from_document(document.id, document.data)

    async def _load_invite(self, token: str) -> InviteRecord | None:
        document = await self._store.get(INVITES_COLLECTION, token)
        if document is None:
            return None
        return InviteRecord.from_document(document.id, document.data)

    async def _expire_if_due(self, invite: InviteRecord) -> InviteRecord:
        """Persist ``expired`` on a pending invitation past its expiry."""
        now = self._clock()
        if invite.status != GrantStatus.PENDING or not invite.is_past_expiry(now):
            return invite

        await self._store.put(
            INVITES_COLLECTION,
            invite.token,
            {"status": GrantStatus.EXPIRED.value, "updatedAt": to_iso(now)},
            merge=True,
        )
        invite.status = GrantStatus.EXPIRED
        invite.updated_at = now
        logger.info("Invitation expired", owner_id=invite.owner_id)
        return invite

    async def _pending_invites_for(self, email: str) -> list[InviteRecord]:
        """Invitations stored as pending for an email, under either field.

        Lazy expiry is applied, so callers must re-check the status.
        """
        invites = await self._invites_for(email, GrantStatus.PENDING)
        return [await self._expire_if_due(invite) for invite in invites]

    async def _invites_for(self, email: str, status: GrantStatus) -> list[InviteRecord]:
        by_token: dict[str, InviteRecord] = {}
        for field_name in ("inviteeEmail", "caregiverEmail"):
            for document in await self._store.query(
                INVITES_COLLECTION,
                {field_name: email, "status": status.value},
            ):
                by_token[document.id] = InviteRecord.from_document(document.id, document.data)
        return list(by_token.values())

    async def _reject_pending_invite(self, owner_id: str, email: str) -> None:
        for invite in await self._pending_invites_for(email):
            if invite.owner_id == owner_id and invite.status == GrantStatus.PENDING:
                raise GrantError(
                    ErrorCode.INVITE_EXISTS,
                    "An invitation has already been sent to this email",
                )

    async def _owner(self, owner_id: str) -> Identity:
        owner = await self._identity.by_id(owner_id)
        if owner is None:
            raise GrantError(ErrorCode.NOT_FOUND, "Owner account not found")
        return owner

    @staticmethod
    def _reject_self_share(owner: Identity, caregiver_email: str) -> None:
        if not caregiver_email:
            raise GrantError(ErrorCode.VALIDATION_FAILED, "Caregiver email is required")
        if owner.normalized_email == caregiver_email:
            raise GrantError(ErrorCode.INVALID_SHARE, "You cannot share with yourself")

    async def _email_of(self, user_id: str) -> str:
        identity = await self._identity.by_id(user_id)
        return identity.normalized_email if identity is not None else ""

    async def _send_invite_email(self, invite: InviteRecord) -> bool:
        if self._email is None:
            return False
        try:
            return await self._email.send_invitation(
                to=invite.recipient_email,
                owner_name=invite.owner_name,
                token=invite.token,
                message=invite.message,
            )
        except Exception:
            # Delivery problems never fail the invitation itself
            logger.exception("Unexpected error sending invite email")
            return False


def _display_name(identity: Identity) -> str:
    if identity.display_name:
        return identity.display_name
    return identity.normalized_email.split("@")[0]


def _newest_first(invites: list[InviteRecord]) -> list[InviteRecord]:
    invites = sorted(invites, key=lambda invite: invite.token)
    return sorted(invites, key=lambda invite: invite.created_at or _EARLIEST, reverse=True)
