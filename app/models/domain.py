"""Domain models for BetSettler.

A bet is created PENDING by the (external) bet placement process and is
settled exactly once, to WON or LOST, by the settler. The settlement
timestamp is set together with the status so that ``settled_at`` is
non-null if and only if the bet is no longer pending.
"""

import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, Enum, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BetStatus(str, enum.Enum):
    """Lifecycle status of a bet."""

    PENDING = "PENDING"
    WON = "WON"
    LOST = "LOST"


class Bet(Base):
    """
    A wager placed by a user on the outcome of a sports event.

    ``predicted_winner_id`` holds the user's prediction; it is compared
    against the event outcome's winner when the bet is settled.
    """

    __tablename__ = "bets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(50), nullable=False)
    event_id: Mapped[str] = mapped_column(String(50), nullable=False)
    event_market_id: Mapped[str] = mapped_column(String(50), nullable=False)
    predicted_winner_id: Mapped[str] = mapped_column(String(50), nullable=False)
    bet_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[BetStatus] = mapped_column(
        Enum(BetStatus, native_enum=False, length=20),
        default=BetStatus.PENDING,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("idx_bets_event_id_status", "event_id", "status"),
        Index("idx_bets_user_id", "user_id"),
    )

    def mark_as_won(self) -> None:
        """Settle this bet as won."""
        self.status = BetStatus.WON
        self.settled_at = utcnow()

    def mark_as_lost(self) -> None:
        """Settle this bet as lost."""
        self.status = BetStatus.LOST
        self.settled_at = utcnow()

    @property
    def is_settled(self) -> bool:
        return self.status != BetStatus.PENDING

    def __repr__(self) -> str:
        return f"<Bet {self.id} event={self.event_id} status={self.status.value}>"
