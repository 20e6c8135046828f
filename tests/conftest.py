"""Pytest configuration and fixtures for BetSettler tests."""

import time
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from itertools import count
from typing import Any

import pulsar
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.base import Base
from app.models.domain import Bet, BetStatus


@pytest.fixture
async def session_factory():
    """Session factory bound to a fresh in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def make_bet(session_factory):
    """Insert a bet and return it."""

    async def _make_bet(
        event_id: str = "EVT-001",
        predicted_winner_id: str = "TEAM-A",
        user_id: str = "USER-001",
        amount: str = "100.00",
        market_id: str = "MATCH_WINNER",
        status: BetStatus = BetStatus.PENDING,
    ) -> Bet:
        async with session_factory() as session:
            bet = Bet(
                user_id=user_id,
                event_id=event_id,
                event_market_id=market_id,
                predicted_winner_id=predicted_winner_id,
                bet_amount=Decimal(amount),
                status=status,
            )
            if status == BetStatus.WON:
                bet.mark_as_won()
            elif status == BetStatus.LOST:
                bet.mark_as_lost()
            session.add(bet)
            await session.commit()
            return bet

    return _make_bet


@pytest.fixture
def fetch_bet(session_factory):
    """Reload a bet from the database in a fresh session."""

    async def _fetch_bet(bet_id: int) -> Bet | None:
        async with session_factory() as session:
            return await session.get(Bet, bet_id)

    return _fetch_bet


# =============================================================================
# Pulsar fakes
# =============================================================================

_message_ids = count(1)


@dataclass
class FakeMessage:
    """Stand-in for pulsar.Message."""

    payload: bytes
    key: str | None = None
    redeliveries: int = 0
    id: int = field(default_factory=lambda: next(_message_ids))

    def data(self) -> bytes:
        return self.payload

    def partition_key(self) -> str | None:
        return self.key

    def message_id(self) -> str:
        return f"msg-{self.id}"

    def redelivery_count(self) -> int:
        return self.redeliveries


class FakeProducer:
    """Stand-in for pulsar.Producer that records sends on a topic list."""

    def __init__(self, result: Any = pulsar.Result.Ok, respond: bool = True):
        self.result = result
        self.respond = respond
        self.sent: list[FakeMessage] = []
        self.closed = False

    def send_async(self, content: bytes, callback, partition_key: str | None = None):
        message = FakeMessage(content, key=partition_key)
        if self.result == pulsar.Result.Ok:
            self.sent.append(message)
        if self.respond:
            callback(self.result, message.message_id())

    def close(self):
        self.closed = True


class FakeConsumer:
    """Stand-in for pulsar.Consumer recording acknowledgements."""

    def __init__(
        self,
        messages: list[FakeMessage] | None = None,
        receive_errors: list[Exception] | None = None,
    ):
        self.inbox = deque(messages or [])
        self.receive_errors = deque(receive_errors or [])
        self.acked: list[FakeMessage] = []
        self.nacked: list[FakeMessage] = []
        self.closed = False

    def receive(self, timeout_millis: int = 1000):
        if self.receive_errors:
            raise self.receive_errors.popleft()
        try:
            return self.inbox.popleft()
        except IndexError:
            time.sleep(0.01)
            raise pulsar.Timeout() from None

    def acknowledge(self, msg):
        self.acked.append(msg)

    def negative_acknowledge(self, msg):
        self.nacked.append(msg)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_producer():
    return FakeProducer()


@pytest.fixture
def fake_consumer():
    return FakeConsumer()
