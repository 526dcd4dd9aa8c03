"""CareShare FastAPI application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from careshare import __version__
from careshare.config import settings
from careshare.core.dependencies import reset_services
from careshare.core.error_handlers import install_error_handlers
from careshare.database import close_database
from careshare.logging_config import get_logger, setup_logging
from careshare.middleware import CorrelationIdMiddleware
from careshare.routers import health, shares

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Migrations are applied with alembic before the server starts
    logger.info("CareShare API started", grant_store=settings.grant_store_backend)

    yield

    logger.info("Shutting down CareShare API...")
    reset_services()
    await close_database()
    logger.info("CareShare API shutdown complete")


app = FastAPI(
    title="CareShare API",
    description="Caregiver access-grant service",
    version=__version__,
    lifespan=lifespan,
)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[shares.HAS_MORE_HEADER, shares.NEXT_CURSOR_HEADER],
)
app.add_middleware(CorrelationIdMiddleware)

install_error_handlers(app)

app.include_router(health.router)
app.include_router(shares.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "CareShare API",
        "version": __version__,
        "docs": "/docs",
    }
