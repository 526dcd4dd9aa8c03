"""Identity resolution against the external identity service.

Resolves user ids and emails to accounts. "No such account" is an
ordinary answer (``None``), expected whenever an invitation goes to
someone who has not signed up yet.
"""

import abc
from dataclasses import dataclass

import httpx

from careshare.logging_config import get_logger
from careshare.models.records import normalize_email
from careshare.services.errors import IdentityLookupError

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    """A resolved account."""

    id: str
    email: str
    display_name: str | None = None

    @property
    def normalized_email(self) -> str:
        return normalize_email(self.email)


class IdentityResolver(abc.ABC):
    @abc.abstractmethod
    async def by_id(self, user_id: str) -> Identity | None:
        """Resolve a user id, or None if no account exists."""

    @abc.abstractmethod
    async def by_email(self, email: str) -> Identity | None:
        """Resolve an email, or None if no account uses it."""


class HttpIdentityResolver(IdentityResolver):
    """Identity service client.

    Endpoints: ``GET {base}/users/{id}`` and ``GET {base}/users?email=``;
    both answer 404 when the account does not exist.
    """

    def __init__(self, base_url: str, timeout: float = 5.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def by_id(self, user_id: str) -> Identity | None:
        return await self._fetch(f"{self._base_url}/users/{user_id}", params=None)

    async def by_email(self, email: str) -> Identity | None:
        return await self._fetch(
            f"{self._base_url}/users", params={"email": normalize_email(email)}
        )

    async def _fetch(self, url: str, params: dict[str, str] | None) -> Identity | None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.error("Identity service unreachable", url=url, error=str(exc))
            raise IdentityLookupError("identity service unreachable") from exc

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error(
                "Identity service error",
                url=url,
                status_code=response.status_code,
            )
            raise IdentityLookupError(
                f"identity service returned {response.status_code}"
            )

        data = response.json()
        if not data.get("id"):
            return None
        return Identity(
            id=str(data["id"]),
            email=data.get("email") or "",
            display_name=data.get("displayName"),
        )
