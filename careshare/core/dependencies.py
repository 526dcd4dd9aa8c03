"""Process-wide service wiring.

Collaborators are built lazily on first use so they bind to the running
event loop, and reset on shutdown. Routers receive them through FastAPI
dependencies, which tests replace via ``app.dependency_overrides``.
"""

from typing import Optional

from careshare.config import settings
from careshare.database import get_session_maker
from careshare.logging_config import get_logger
from careshare.services.email_dispatcher import EmailDispatcher
from careshare.services.grant_lifecycle import GrantLifecycleService
from careshare.services.grant_store import (
    GrantStore,
    InMemoryGrantStore,
    SqlGrantStore,
)
from careshare.services.identity import HttpIdentityResolver, IdentityResolver
from careshare.services.lookup_cache import LookupCache
from careshare.services.roles import RoleGrantService

logger = get_logger(__name__)

_store: Optional[GrantStore] = None
_identity: Optional[IdentityResolver] = None
_service: Optional[GrantLifecycleService] = None


def get_grant_store() -> GrantStore:
    """Get or create the grant store selected by ``grant_store_backend``."""
    global _store
    if _store is None:
        if settings.grant_store_backend == "memory":
            _store = InMemoryGrantStore()
        elif settings.grant_store_backend == "sql":
            _store = SqlGrantStore(get_session_maker())
        else:
            raise ValueError(
                f"Unknown grant store backend: {settings.grant_store_backend!r}"
            )
        logger.info("Grant store ready", backend=settings.grant_store_backend)
    return _store


def get_identity_resolver() -> IdentityResolver:
    global _identity
    if _identity is None:
        _identity = HttpIdentityResolver(
            settings.identity_service_url,
            timeout=settings.identity_service_timeout_seconds,
        )
    return _identity


def get_grant_service() -> GrantLifecycleService:
    """Get or create the lifecycle service and its single LookupCache."""
    global _service
    if _service is None:
        store = get_grant_store()
        _service = GrantLifecycleService(
            store=store,
            identity=get_identity_resolver(),
            cache=LookupCache(store),
            roles=RoleGrantService(store),
            email=EmailDispatcher(
                api_key=settings.resend_api_key,
                sender=settings.email_from,
                portal_url=settings.web_portal_url,
            ),
        )
    return _service


def reset_services() -> None:
    """Forget every wired collaborator (shutdown and tests)."""
    global _store, _identity, _service
    _store = None
    _identity = None
    _service = None
