"""Health check endpoints."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from sealedlove.api.deps import SessionDep, StoreDep
from sealedlove.config import settings
from sealedlove.services.cache import StoreUnavailable

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check - just confirms the service is running."""
    return {"status": "ok"}


@router.get("/db")
async def health_check_db(session: SessionDep):
    """Health check with database connectivity."""
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "ok", "database": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "disconnected"},
        )


@router.get("/redis")
async def health_check_redis(store: StoreDep):
    """Health check for the ephemeral store holding codes and tokens."""
    try:
        await store.ping()
        return {"status": "ok", "redis": "connected"}
    except StoreUnavailable as e:
        logger.error(f"Redis health check failed: {e!r}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "redis": "disconnected"},
        )


@router.get("/ready")
async def readiness_check(session: SessionDep, store: StoreDep):
    """Readiness check - confirms all dependencies are available.

    Returns 503 if the database or the ephemeral store is unavailable.
    """
    errors = {}

    try:
        await session.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database readiness check failed: {e!r}")
        db_status = "disconnected"
        errors["database"] = str(e)

    try:
        await store.ping()
        redis_status = "connected"
    except StoreUnavailable as e:
        logger.error(f"Redis readiness check failed: {e!r}")
        redis_status = "disconnected"
        errors["redis"] = str(e)

    # A console backend in production means sign-in emails never leave the box
    email_ok = settings.email_backend != "console" or not settings.is_production

    status = "ok" if not errors and email_ok else "degraded"
    response = {
        "status": status,
        "database": db_status,
        "redis": redis_status,
        "email_configured": email_ok,
    }

    if errors:
        return JSONResponse(status_code=503, content=response)
    return response
