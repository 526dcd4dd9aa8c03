"""Caregiver share lookup cache.

Maps a caregiver id to the accepted shares that caregiver holds, and
(caregiver, owner) pairs to an access decision. Entries are filled on a
miss from the grant store and live until explicitly invalidated; there
is no time-based expiry. A fill whose query overlaps an invalidation of
the same caregiver is returned but not stored. Any mutation that changes a share's status or
its caregiver id must invalidate every caregiver id it touched.

One instance is built per process and injected into the services that
read or mutate grants.
"""

from dataclasses import dataclass, replace

from careshare.logging_config import get_logger
from careshare.models.records import (
    SHARES_COLLECTION,
    GrantStatus,
    ShareRecord,
    share_key,
)
from careshare.services.grant_store import GrantStore

logger = get_logger(__name__)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0


class LookupCache:
    """Accepted-share lookups keyed by caregiver id."""

    def __init__(self, store: GrantStore):
        self._store = store
        self._accepted: dict[str, list[ShareRecord]] = {}
        self._access: dict[tuple[str, str], bool] = {}
        self._generations: dict[str, int] = {}
        self._epoch = 0
        self.stats = CacheStats()

    async def accepted_shares(self, caregiver_id: str) -> list[ShareRecord]:
        """Accepted shares held by a caregiver, oldest first."""
        cached = self._accepted.get(caregiver_id)
        if cached is not None:
            self.stats.hits += 1
            return [replace(share) for share in cached]

        self.stats.misses += 1
        generation = self._generation(caregiver_id)
        documents = await self._store.query(
            SHARES_COLLECTION,
            {
                "caregiverUserId": caregiver_id,
                "status": GrantStatus.ACCEPTED.value,
            },
            order_by="createdAt",
        )
        shares = [ShareRecord.from_document(d.id, d.data) for d in documents]
        if self._generation(caregiver_id) == generation:
            self._accepted[caregiver_id] = shares
            for share in shares:
                self._access[(caregiver_id, share.owner_id)] = True

        logger.debug(
            "Loaded accepted shares for caregiver",
            caregiver_id=caregiver_id,
            count=len(shares),
        )
        return [replace(share) for share in shares]

    async def has_access(self, caregiver_id: str, owner_id: str) -> bool:
        """Whether the caregiver holds an accepted share from the owner."""
        key = (caregiver_id, owner_id)
        cached = self._access.get(key)
        if cached is not None:
            self.stats.hits += 1
            return cached

        self.stats.misses += 1
        generation = self._generation(caregiver_id)
        document = await self._store.get(
            SHARES_COLLECTION, share_key(owner_id, caregiver_id)
        )
        allowed = (
            document is not None
            and document.data.get("status") == GrantStatus.ACCEPTED.value
            and document.data.get("caregiverUserId") == caregiver_id
        )
        if self._generation(caregiver_id) == generation:
            self._access[key] = allowed
        return allowed

    def invalidate(self, caregiver_id: str, owner_id: str | None = None) -> None:
        """Drop every entry for a caregiver.

        The caregiver's share list spans all owners, so the whole entry goes
        even when ``owner_id`` is given; it is only logged.
        """
        self.stats.invalidations += 1
        self._generations[caregiver_id] = self._generations.get(caregiver_id, 0) + 1
        self._accepted.pop(caregiver_id, None)
        for key in [k for k in self._access if k[0] == caregiver_id]:
            del self._access[key]
        logger.debug(
            "Invalidated caregiver share lookups",
            caregiver_id=caregiver_id,
            owner_id=owner_id,
        )

    def clear(self) -> None:
        self._epoch += 1
        self._accepted.clear()
        self._access.clear()

    def _generation(self, caregiver_id: str) -> tuple[int, int]:
        return self._epoch, self._generations.get(caregiver_id, 0)
