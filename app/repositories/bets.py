"""Bet store queries.

BetRepository wraps an AsyncSession and exposes the query surface the
matcher, the settler and the read API need:

- find_by_event_and_status(event_id, status): core matching query (indexed)
- find_by_id(bet_id): single bet lookup
- find(...): filtered listing for the read API
- count_by_event_and_status(event_id, status): pending bet statistics

The repository never commits; transaction boundaries belong to the caller.
"""

from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.domain import Bet, BetStatus


class BetRepository:
    """Data access for the ``bets`` table."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_event_and_status(
        self, event_id: str, status: BetStatus
    ) -> Sequence[Bet]:
        result = await self.session.execute(
            select(Bet)
            .where(Bet.event_id == event_id, Bet.status == status)
            .order_by(Bet.id)
        )
        return result.scalars().all()

    async def find_by_id(self, bet_id: int) -> Bet | None:
        return await self.session.get(Bet, bet_id)

    async def find(
        self,
        event_id: str | None = None,
        user_id: str | None = None,
        status: BetStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[Bet]:
        """Filtered listing used by the read API."""
        query = select(Bet)
        if event_id:
            query = query.where(Bet.event_id == event_id)
        if user_id:
            query = query.where(Bet.user_id == user_id)
        if status:
            query = query.where(Bet.status == status)

        result = await self.session.execute(
            query.order_by(Bet.id).offset(offset).limit(limit)
        )
        return result.scalars().all()

    async def count_by_event_and_status(self, event_id: str, status: BetStatus) -> int:
        result = await self.session.execute(
            select(func.count(Bet.id)).where(
                Bet.event_id == event_id, Bet.status == status
            )
        )
        return result.scalar_one()
