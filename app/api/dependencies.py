"""FastAPI dependencies for BetSettler."""

from collections.abc import AsyncGenerator

import redis.asyncio as redis
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.messaging.outcome_publisher import OutcomePublisher
from app.models.base import async_session_factory
from app.services.matching import BetMatcher
from app.services.settlement import Settler


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_redis() -> AsyncGenerator[redis.Redis, None]:
    """Get Redis client dependency."""
    settings = get_settings()
    client = redis.from_url(settings.redis_url)
    try:
        yield client
    finally:
        await client.aclose()


def get_outcome_publisher(request: Request) -> OutcomePublisher:
    """Outcome publisher opened by the application lifespan."""
    return request.app.state.outcome_publisher


def get_bet_matcher(request: Request) -> BetMatcher:
    """Bet matcher wired by the application lifespan."""
    return request.app.state.bet_matcher


def get_settler(request: Request) -> Settler:
    """Settler wired by the application lifespan."""
    return request.app.state.settler
