"""Bet settlement.

The settler is the only writer of bet status. Each decision is applied in
its own transaction: load the bet, mark it WON or LOST, commit.

Settlement is not idempotent. Settling an already settled bet overwrites
its status and timestamp (last write wins), which is what happens when a
redelivered outcome produces the same decision twice.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.exceptions import BetNotFoundError
from app.models.domain import Bet
from app.repositories.bets import BetRepository
from app.schemas.messages import SettlementDecision

logger = structlog.get_logger(__name__)


class Settler:
    """Apply settlement decisions to the bet store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def settle(self, decision: SettlementDecision) -> Bet:
        """
        Settle one bet.

        Raises:
            BetNotFoundError: if ``decision.bet_id`` does not exist (nothing is written)
        """
        logger.info(
            "settling_bet",
            bet_id=decision.bet_id,
            user_id=decision.user_id,
            event_id=decision.event_id,
            won=decision.won,
        )

        async with self.session_factory() as session:
            async with session.begin():
                bet = await BetRepository(session).find_by_id(decision.bet_id)
                if bet is None:
                    logger.error("bet_not_found", bet_id=decision.bet_id)
                    raise BetNotFoundError(decision.bet_id)

                if bet.is_settled:
                    logger.warning(
                        "bet_already_settled",
                        bet_id=bet.id,
                        previous_status=bet.status.value,
                        previous_settled_at=bet.settled_at,
                    )

                if decision.won:
                    bet.mark_as_won()
                else:
                    bet.mark_as_lost()

        logger.info(
            "bet_settled",
            bet_id=bet.id,
            status=bet.status.value,
            amount=str(bet.bet_amount),
            settled_at=bet.settled_at,
        )
        return bet

    async def get_bet(self, bet_id: int) -> Bet:
        """
        Load a bet by id.

        Raises:
            BetNotFoundError: if the bet does not exist
        """
        async with self.session_factory() as session:
            bet = await BetRepository(session).find_by_id(bet_id)
        if bet is None:
            raise BetNotFoundError(bet_id)
        return bet
