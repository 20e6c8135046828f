"""Message schemas for BetSettler."""

from app.schemas.messages import EventOutcome, SettlementDecision

__all__ = ["EventOutcome", "SettlementDecision"]
