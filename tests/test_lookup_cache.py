"""Tests for the caregiver share lookup cache."""

import asyncio

import pytest

from careshare.models.records import SHARES_COLLECTION
from careshare.services.grant_store import InMemoryGrantStore
from careshare.services.lookup_cache import LookupCache


async def _put_share(store, owner, caregiver, status="accepted", created="2026-03-01T00:00:00+00:00"):
    await store.put(
        SHARES_COLLECTION,
        f"{owner}_{caregiver}",
        {
            "ownerId": owner,
            "caregiverUserId": caregiver,
            "caregiverEmail": f"{caregiver}@ex.com",
            "status": status,
            "createdAt": created,
        },
    )


@pytest.fixture
def store():
    return InMemoryGrantStore()


@pytest.fixture
def cache(store):
    return LookupCache(store)


async def test_accepted_shares_only(store, cache):
    await _put_share(store, "p1", "c9")
    await _put_share(store, "p2", "c9", status="pending")
    await _put_share(store, "p3", "c9", created="2026-02-01T00:00:00+00:00")

    shares = await cache.accepted_shares("c9")

    assert [share.id for share in shares] == ["p3_c9", "p1_c9"]


async def test_second_read_served_from_cache(store, cache):
    await _put_share(store, "p1", "c9")
    await cache.accepted_shares("c9")
    await _put_share(store, "p2", "c9")

    shares = await cache.accepted_shares("c9")

    assert [share.id for share in shares] == ["p1_c9"]
    assert cache.stats.hits == 1
    assert cache.stats.misses == 1


async def test_invalidate_reloads(store, cache):
    await _put_share(store, "p1", "c9")
    await cache.accepted_shares("c9")
    await _put_share(store, "p1", "c9", status="revoked")

    cache.invalidate("c9", "p1")

    assert await cache.accepted_shares("c9") == []
    assert cache.stats.invalidations == 1


async def test_returned_records_are_copies(store, cache):
    await _put_share(store, "p1", "c9")
    shares = await cache.accepted_shares("c9")
    shares[0].status = "revoked"

    assert (await cache.accepted_shares("c9"))[0].status == "accepted"


async def test_has_access(store, cache):
    await _put_share(store, "p1", "c9")
    await _put_share(store, "p2", "c9", status="pending")

    assert await cache.has_access("c9", "p1") is True
    assert await cache.has_access("c9", "p2") is False
    assert await cache.has_access("c1", "p1") is False


async def test_has_access_invalidated_with_caregiver(store, cache):
    await _put_share(store, "p1", "c9")
    assert await cache.has_access("c9", "p1") is True
    await _put_share(store, "p1", "c9", status="revoked")

    assert await cache.has_access("c9", "p1") is True
    cache.invalidate("c9")
    assert await cache.has_access("c9", "p1") is False


async def test_invalidation_is_per_caregiver(store, cache):
    await _put_share(store, "p1", "c9")
    await _put_share(store, "p1", "c8")
    await cache.accepted_shares("c9")
    await cache.accepted_shares("c8")

    cache.invalidate("c9")
    await cache.accepted_shares("c8")

    assert cache.stats.hits == 1


async def test_clear(store, cache):
    await _put_share(store, "p1", "c9")
    await cache.accepted_shares("c9")
    cache.clear()
    await cache.accepted_shares("c9")
    assert cache.stats.misses == 2


class _GatedStore(InMemoryGrantStore):
    """Holds every read until ``release`` is set."""

    def __init__(self):
        super().__init__()
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def query(self, *args, **kwargs):
        documents = await super().query(*args, **kwargs)
        self.started.set()
        await self.release.wait()
        return documents

    async def get(self, *args, **kwargs):
        document = await super().get(*args, **kwargs)
        self.started.set()
        await self.release.wait()
        return document


async def test_invalidation_during_fill_is_not_overwritten():
    store = _GatedStore()
    cache = LookupCache(store)

    fill = asyncio.create_task(cache.accepted_shares("c9"))
    await store.started.wait()
    await _put_share(store, "p1", "c9")
    cache.invalidate("c9", "p1")
    store.release.set()

    assert await fill == []
    assert [share.id for share in await cache.accepted_shares("c9")] == ["p1_c9"]


async def test_invalidation_during_access_check_is_not_overwritten():
    store = _GatedStore()
    cache = LookupCache(store)

    check = asyncio.create_task(cache.has_access("c9", "p1"))
    await store.started.wait()
    await _put_share(store, "p1", "c9")
    cache.invalidate("c9", "p1")
    store.release.set()

    assert await check is False
    assert await cache.has_access("c9", "p1") is True


async def test_clear_during_fill_is_not_overwritten():
    store = _GatedStore()
    cache = LookupCache(store)

    fill = asyncio.create_task(cache.accepted_shares("c9"))
    await store.started.wait()
    await _put_share(store, "p1", "c9")
    cache.clear()
    store.release.set()

    assert await fill == []
    assert len(await cache.accepted_shares("c9")) == 1
