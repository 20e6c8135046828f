"""Database models for BetSettler."""

from app.models.base import Base, async_session_factory, engine
from app.models.domain import Bet, BetStatus

__all__ = [
    # Base
    "Base",
    "engine",
    "async_session_factory",
    # Domain models
    "Bet",
    "BetStatus",
]
