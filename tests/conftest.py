"""Pytest configuration and shared fixtures.

The lifecycle service is exercised against the in-memory grant store, a
scripted identity resolver and a controllable clock.
"""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set testing mode BEFORE importing the app
os.environ["TESTING"] = "true"
os.environ["GRANT_STORE_BACKEND"] = "memory"

from careshare.config import settings

settings.testing = True
settings.grant_store_backend = "memory"

from careshare.core.dependencies import get_grant_service, get_identity_resolver
from careshare.main import app
from careshare.services.grant_lifecycle import GrantLifecycleService
from careshare.services.grant_store import InMemoryGrantStore
from careshare.services.identity import Identity, IdentityResolver
from careshare.services.lookup_cache import LookupCache
from careshare.services.roles import RoleGrantService


class FakeIdentityResolver(IdentityResolver):
    """Accounts registered by the test; unknown ids and emails resolve to None."""

    def __init__(self) -> None:
        self.accounts: dict[str, Identity] = {}

    def add(self, user_id: str, email: str, display_name: str | None = None) -> Identity:
        identity = Identity(id=user_id, email=email, display_name=display_name)
        self.accounts[user_id] = identity
        return identity

    def remove(self, user_id: str) -> None:
        self.accounts.pop(user_id, None)

    async def by_id(self, user_id: str) -> Identity | None:
        return self.accounts.get(user_id)

    async def by_email(self, email: str) -> Identity | None:
        wanted = email.strip().lower()
        for identity in self.accounts.values():
            if identity.normalized_email == wanted:
                return identity
        return None


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def store() -> InMemoryGrantStore:
    return InMemoryGrantStore()


@pytest.fixture
def identities() -> FakeIdentityResolver:
    """Owner ``p1`` plus a spare owner ``p2``; caregivers are added per test."""
    resolver = FakeIdentityResolver()
    resolver.add("p1", "pat@ex.com", "Pat Owner")
    resolver.add("p2", "robin@ex.com")
    return resolver


@pytest.fixture
def cache(store) -> LookupCache:
    return LookupCache(store)


@pytest.fixture
def roles(store) -> RoleGrantService:
    return RoleGrantService(store)


@pytest.fixture
def service(store, identities, cache, roles, clock) -> GrantLifecycleService:
    return GrantLifecycleService(
        store=store,
        identity=identities,
        cache=cache,
        roles=roles,
        email=None,
        clock=clock,
    )


@pytest_asyncio.fixture
async def client(service, identities) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client wired to the test service and identity resolver."""
    app.dependency_overrides[get_grant_service] = lambda: service
    app.dependency_overrides[get_identity_resolver] = lambda: identities
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()

