"""Acting-identity dependency.

Authentication happens upstream: the gateway verifies the caller and
forwards the user id in a trusted header (``settings.identity_header``).
This dependency only resolves that id to an account.
"""

from typing import Annotated

from fastapi import Depends, Request

from careshare.config import settings
from careshare.core.dependencies import get_identity_resolver
from careshare.logging_config import get_logger
from careshare.services.errors import ErrorCode, GrantError, IdentityLookupError
from careshare.services.identity import Identity, IdentityResolver

logger = get_logger(__name__)


async def get_current_identity(
    request: Request,
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> Identity:
    """Resolve the acting user from the gateway header.

    Raises:
        GrantError: unauthenticated if the header is missing or names no
            account; server_error if the identity service fails.
    """
    user_id = request.headers.get(settings.identity_header, "").strip()
    if not user_id:
        raise GrantError(ErrorCode.UNAUTHENTICATED, "Not authenticated")

    try:
        identity = await resolver.by_id(user_id)
    except IdentityLookupError as exc:
        raise GrantError(
            ErrorCode.SERVER_ERROR, "Failed to resolve the current user"
        ) from exc

    if identity is None:
        logger.warning("Unknown user in identity header", user_id=user_id)
        raise GrantError(ErrorCode.UNAUTHENTICATED, "Not authenticated")
    return identity


CurrentIdentity = Annotated[Identity, Depends(get_current_identity)]
