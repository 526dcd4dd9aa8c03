"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from careshare.config import settings
from careshare.database import check_database_connection

router = APIRouter(tags=["Health"])


async def _storage_status() -> tuple[bool, str]:
    """Whether grant storage is usable, and how to describe it."""
    if settings.grant_store_backend == "memory":
        return True, "in_memory"
    if await check_database_connection():
        return True, "connected"
    return False, "disconnected"


@router.get("/health", response_model=None)
async def health_check() -> Response:
    """
    Health check endpoint with storage status.

    Returns 200 ``{"status": "healthy", ...}`` when storage answers and
    503 ``{"status": "degraded", ...}`` otherwise.
    """
    ok, database = await _storage_status()
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "healthy" if ok else "degraded", "database": database},
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """Process is up. Never checks dependencies."""
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe() -> Response:
    ok, database = await _storage_status()
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ok else "not_ready", "database": database},
    )
