"""Message payloads exchanged between the relay components.

Both payloads are transient value objects. They use camelCase aliases on
the wire (``eventId``, ``betAmount``...) and snake_case in Python.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for payloads serialized to a broker."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> dict:
        """JSON-compatible dict using wire aliases."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")


class EventOutcome(WireModel):
    """The authoritative result of a sports event."""

    event_id: str
    event_name: str
    event_winner_id: str

    @field_validator("event_id", "event_name", "event_winner_id")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value


class SettlementDecision(WireModel):
    """
    Settlement command for a single bet.

    ``won`` is decided by the matcher; ``predicted_winner_id`` keeps the
    bet's original prediction for audit.
    """

    bet_id: int
    user_id: str
    event_id: str
    event_market_id: str
    event_winner_id: str
    predicted_winner_id: str
    bet_amount: Decimal
    won: bool

    @property
    def tag(self) -> str:
        """Message classifier: WON or LOST."""
        return "WON" if self.won else "LOST"
