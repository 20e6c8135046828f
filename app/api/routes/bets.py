"""Bet API endpoints (read-only)."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_db, get_settler
from app.exceptions import BetNotFoundError
from app.models.domain import BetStatus
from app.repositories.bets import BetRepository
from app.services.settlement import Settler

router = APIRouter(prefix="/api/bets", tags=["bets"])


class BetResponse(BaseModel):
    """Bet in API response."""

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: int
    user_id: str
    event_id: str
    event_market_id: str
    predicted_winner_id: str
    bet_amount: Decimal
    status: BetStatus
    created_at: datetime
    settled_at: datetime | None = None


@router.get("", response_model=list[BetResponse])
async def list_bets(
    db: AsyncSession = Depends(get_db),
    event_id: str | None = None,
    user_id: str | None = None,
    status: BetStatus | None = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
):
    """List bets, optionally filtered by event, user and status."""
    bets = await BetRepository(db).find(
        event_id=event_id,
        user_id=user_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    return [BetResponse.model_validate(bet) for bet in bets]


@router.get("/{bet_id}", response_model=BetResponse)
async def get_bet(
    bet_id: int,
    settler: Settler = Depends(get_settler),
):
    """Get a single bet."""
    try:
        bet = await settler.get_bet(bet_id)
    except BetNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return BetResponse.model_validate(bet)
