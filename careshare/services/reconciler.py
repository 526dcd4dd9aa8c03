"""Caregiver identity reconciliation.

A share records the caregiver's user id at the time it was issued. If the
caregiver later shows up under a different id (account recreated, invite
resent to a new signup) but with the same email, they may take the share
over. The share then moves to the key derived from the new id.
"""

from dataclasses import dataclass, replace
from datetime import datetime

from careshare.models.records import GrantStatus, ShareRecord, normalize_email


@dataclass(frozen=True)
class ReconcileDecision:
    allow: bool
    migrate: bool = False


DENY = ReconcileDecision(allow=False)


def reconcile(
    share: ShareRecord,
    acting_user_id: str,
    acting_email: str | None,
) -> ReconcileDecision:
    """Decide whether ``acting_user_id`` may act as the share's caregiver.

    - same id: allowed as is
    - different id, same normalized email: allowed, share must migrate
    - otherwise: denied

    An empty email on either side never matches.
    """
    if share.caregiver_user_id and share.caregiver_user_id == acting_user_id:
        return ReconcileDecision(allow=True, migrate=False)

    share_email = normalize_email(share.caregiver_email)
    actor_email = normalize_email(acting_email)
    if share_email and actor_email and share_email == actor_email:
        return ReconcileDecision(allow=True, migrate=True)

    return DENY


def migrated_share(
    share: ShareRecord, acting_user_id: str, now: datetime
) -> ShareRecord:
    """The accepted share relocated to ``acting_user_id``'s key."""
    return replace(
        share.relocated_to(acting_user_id),
        status=GrantStatus.ACCEPTED,
        accepted_at=now,
        updated_at=now,
    )
