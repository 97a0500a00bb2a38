"""Health check endpoint with real dependency probes.

Each probe has a short timeout. A dependency reporting "disconnected" does
not change the overall status: the endpoint always returns 200 so load
balancers keep routing.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Request
from sqlalchemy import text

from modelmagic.config import settings

logger = structlog.get_logger()

router = APIRouter(tags=["health"])

VERSION = "0.1.0"
_CHECK_TIMEOUT = 3.0  # seconds per probe


async def _check_database(request: Request) -> str:
    """Run SELECT 1 through the app's session factory."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        return "disconnected"

    async def _ping() -> None:
        async with services.session_factory() as session:
            await session.execute(text("SELECT 1"))

    try:
        await asyncio.wait_for(_ping(), timeout=_CHECK_TIMEOUT)
        return "connected"
    except Exception as exc:
        logger.debug("health_database_failed", error=str(exc))
        return "disconnected"


async def _check_r2() -> str:
    """Check R2 bucket accessibility via head_bucket."""
    from modelmagic.utils import r2

    if not r2.is_configured():
        return "not_configured"
    try:
        await asyncio.wait_for(asyncio.to_thread(r2.head_bucket), timeout=_CHECK_TIMEOUT)
        return "connected"
    except Exception as exc:
        logger.debug("health_r2_failed", error=str(exc))
        return "disconnected"


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Probe the database and R2 in parallel. Always 200."""
    database, r2_status = await asyncio.gather(_check_database(request), _check_r2())
    return {
        "status": "ok",
        "version": VERSION,
        "environment": settings.environment,
        "database": database,
        "r2": r2_status,
        "email": "configured" if settings.resend_api_key else "not_configured",
    }
