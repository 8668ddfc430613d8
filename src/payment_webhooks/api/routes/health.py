"""Health probes for the webhook service."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payment_webhooks import __version__
from payment_webhooks.api.dependencies import DbSession
from payment_webhooks.api.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _database_reachable(db: AsyncSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("Database probe failed", exc_info=True)
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, db: DbSession) -> HealthResponse:
    """Database reachability plus the number of orders being reconciled right now."""
    database_ok = await _database_reachable(db)
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        timestamp=datetime.now(timezone.utc),
        database="healthy" if database_ok else "unhealthy",
        version=__version__,
        orders_in_flight=len(request.app.state.order_locks),
    )


@router.get("/ready")
async def readiness_check(db: DbSession) -> JSONResponse:
    """Ready once the database answers; the gateway would otherwise retry into errors."""
    if await _database_reachable(db):
        return JSONResponse({"status": "ready"})
    return JSONResponse(
        {"status": "not_ready"},
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    """Process is up and serving requests."""
    return {"status": "alive"}
