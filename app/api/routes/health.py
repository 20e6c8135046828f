"""Health check endpoints."""

from datetime import datetime, timezone

import redis.asyncio as redis
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_db, get_redis
from app.config import get_settings

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime


class ReadyCheck(BaseModel):
    """Individual readiness check."""

    status: str
    message: str | None = None


class ReadyResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    checks: dict[str, ReadyCheck]


@router.get("/health", response_model=HealthResponse)
async def health():
    """
    Basic health check.

    Returns healthy if the service is running.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/ready", response_model=ReadyResponse)
async def ready(
    request: Request,
    db: AsyncSession = Depends(get_db),
    redis_client: redis.Redis = Depends(get_redis),
):
    """
    Readiness check for all dependencies.

    Checks:
    - Database connectivity
    - Redis connectivity (only when settlements go through the queue)
    - Outcome publisher opened
    """
    checks = {}
    all_ready = True

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        checks["db"] = ReadyCheck(status="ok")
    except Exception as e:
        checks["db"] = ReadyCheck(status="error", message=str(e))
        all_ready = False

    # Check Redis
    settings = get_settings()
    if settings.settlement_broker_enabled:
        try:
            await redis_client.ping()
            checks["redis"] = ReadyCheck(status="ok")
        except Exception as e:
            checks["redis"] = ReadyCheck(status="error", message=str(e))
            all_ready = False
    else:
        checks["redis"] = ReadyCheck(
            status="skipped", message="Settlements are applied in-process"
        )

    # Check Pulsar
    if getattr(request.app.state, "outcome_publisher", None) is not None:
        checks["pulsar"] = ReadyCheck(status="ok")
    else:
        checks["pulsar"] = ReadyCheck(status="error", message="Outcome publisher not open")
        all_ready = False

    return ReadyResponse(ready=all_ready, checks=checks)
