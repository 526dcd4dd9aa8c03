"""Rendering of grant errors as HTTP responses.

Every failure body has the same shape: ``{"code": ..., "message": ...}``.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from careshare.logging_config import get_logger
from careshare.services.errors import ErrorCode, GrantError

logger = get_logger(__name__)

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.EMAIL_MISMATCH: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVITE_REVOKED: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVITE_EXPIRED: status.HTTP_410_GONE,
    ErrorCode.INVITE_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.SHARE_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_SHARE: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TRANSITION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_CURSOR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVITE_USED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.SERVER_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(code: ErrorCode) -> int:
    return STATUS_BY_CODE.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def grant_error_handler(request: Request, exc: GrantError) -> JSONResponse:
    status_code = status_for(exc.code)
    if status_code >= 500:
        logger.error("Grant request failed", path=request.url.path, code=exc.code.value)
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code.value, "message": exc.message},
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed requests as ``validation_failed``."""
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "code": ErrorCode.VALIDATION_FAILED.value,
            "message": f"{field}: {message}" if field else message,
        },
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GrantError, grant_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
