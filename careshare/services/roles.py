"""Caregiver role grants."""

from careshare.logging_config import get_logger
from careshare.models.records import USER_ROLES_COLLECTION, to_iso, utcnow
from careshare.services.grant_store import GrantStore

logger = get_logger(__name__)

CAREGIVER_ROLE = "caregiver"


class RoleGrantService:
    """Maintains each user's role set in the ``userRoles`` collection."""

    def __init__(self, store: GrantStore):
        self._store = store

    async def ensure_caregiver_role(self, user_id: str) -> None:
        """Add the caregiver role. Safe to call repeatedly."""
        document = await self._store.get(USER_ROLES_COLLECTION, user_id)
        data = document.data if document is not None else {}
        roles = data.get("roles") if isinstance(data.get("roles"), list) else []

        if CAREGIVER_ROLE in roles and data.get("primaryRole"):
            return

        update: dict = {
            "roles": sorted(set(roles) | {CAREGIVER_ROLE}),
            "updatedAt": to_iso(utcnow()),
        }
        if not data.get("primaryRole"):
            update["primaryRole"] = CAREGIVER_ROLE

        await self._store.put(USER_ROLES_COLLECTION, user_id, update, merge=True)
        logger.info("Granted caregiver role", user_id=user_id)

