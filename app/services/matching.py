"""Bet matching.

Turns an event outcome into one settlement decision per pending bet on
that event. A bet is won when its predicted winner equals the outcome's
winner, compared as exact, case-sensitive strings.

The matcher only reads. Bet status is written by the settler alone.

Known limitation: the market identifier is not part of the match key, so
every pending bet on the event is settled against the same winner. This is
only correct for single-market events.
"""

from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import MatchingError
from app.models.domain import Bet, BetStatus
from app.repositories.bets import BetRepository
from app.schemas.messages import EventOutcome, SettlementDecision

logger = structlog.get_logger(__name__)


def build_decision(bet: Bet, outcome: EventOutcome) -> SettlementDecision:
    """Decide a single bet against an outcome."""
    won = bet.predicted_winner_id == outcome.event_winner_id
    return SettlementDecision(
        bet_id=bet.id,
        user_id=bet.user_id,
        event_id=bet.event_id,
        event_market_id=bet.event_market_id,
        event_winner_id=outcome.event_winner_id,
        predicted_winner_id=bet.predicted_winner_id,
        bet_amount=bet.bet_amount,
        won=won,
    )


class BetMatcher:
    """Match pending bets against event outcomes."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def match_bets(self, outcome: EventOutcome) -> list[SettlementDecision]:
        """
        Build settlement decisions for all pending bets on the outcome's event.

        Returns an empty list when there is nothing to settle.

        Raises:
            MatchingError: if the pending bets cannot be read
        """
        logger.info(
            "matching_bets",
            event_id=outcome.event_id,
            winner_id=outcome.event_winner_id,
        )

        try:
            async with self.session_factory() as session:
                pending = await BetRepository(session).find_by_event_and_status(
                    outcome.event_id, BetStatus.PENDING
                )
                decisions = [build_decision(bet, outcome) for bet in pending]
        except SQLAlchemyError as e:
            logger.error(
                "bet_matching_failed",
                event_id=outcome.event_id,
                error=str(e),
            )
            raise MatchingError(
                f"Failed to read pending bets: {e}", event_id=outcome.event_id
            ) from e

        if not decisions:
            logger.warning("no_pending_bets", event_id=outcome.event_id)
            return []

        stats = self._summarize(decisions)
        logger.info("bets_matched", event_id=outcome.event_id, **stats)
        return decisions

    async def pending_bet_count(self, event_id: str) -> int:
        """Number of bets still pending on an event."""
        async with self.session_factory() as session:
            return await BetRepository(session).count_by_event_and_status(
                event_id, BetStatus.PENDING
            )

    @staticmethod
    def _summarize(decisions: list[SettlementDecision]) -> dict[str, Any]:
        won = sum(1 for d in decisions if d.won)
        return {"settlements": len(decisions), "won": won, "lost": len(decisions) - won}
