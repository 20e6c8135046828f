"""Unit tests for outcome consumption and the acknowledgement policy."""

import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pulsar
import pytest

from app.config import Settings
from app.exceptions import DeliveryError, MatchingError
from app.messaging.outcome_consumer import (
    ConsumeResult,
    OutcomeProcessor,
    PulsarOutcomeConsumer,
    decide_ack,
    run_outcome_consumers,
)
from app.messaging.settlement_relay import RelayReport
from app.schemas.messages import EventOutcome, SettlementDecision
from tests.conftest import FakeConsumer, FakeMessage

OUTCOME = EventOutcome(event_id="EVT-001", event_name="Final", event_winner_id="TEAM-A")


def decision(bet_id: int) -> SettlementDecision:
    return SettlementDecision(
        bet_id=bet_id,
        user_id=f"USER-{bet_id}",
        event_id="EVT-001",
        event_market_id="MATCH_WINNER",
        event_winner_id="TEAM-A",
        predicted_winner_id="TEAM-A",
        bet_amount=Decimal("10.00"),
        won=True,
    )


def matcher_returning(decisions=None, error: Exception | None = None) -> MagicMock:
    matcher = MagicMock()
    matcher.match_bets = AsyncMock(return_value=decisions or [], side_effect=error)
    return matcher


def outcome_message(**overrides) -> FakeMessage:
    body = {"eventId": "EVT-001", "eventName": "Final", "eventWinnerId": "TEAM-A"}
    body.update(overrides)
    return FakeMessage(json.dumps(body).encode("utf-8"), key=body.get("eventId"))


class TestDecideAck:

    def test_matching_failure_is_redelivered(self):
        assert decide_ack(None) is ConsumeResult.NACK_REDELIVER
        assert not ConsumeResult.NACK_REDELIVER.acknowledges

    def test_clean_batch_is_acked(self):
        assert decide_ack(RelayReport(sent=[1, 2])) is ConsumeResult.ACK

    def test_empty_batch_is_acked(self):
        assert decide_ack(RelayReport()) is ConsumeResult.ACK

    def test_partial_failure_is_still_acked(self):
        result = decide_ack(RelayReport(sent=[1], failed={2: "boom"}))

        assert result is ConsumeResult.ACK_WITH_PARTIAL_FAILURE
        assert result.acknowledges


class TestOutcomeProcessor:

    async def test_no_bets_never_invokes_relay(self):
        relay = MagicMock()
        relay.send = AsyncMock()
        processor = OutcomeProcessor(matcher_returning([]), relay)

        result = await processor.process(OUTCOME)

        assert result is ConsumeResult.ACK
        relay.send.assert_not_awaited()

    async def test_relays_every_decision(self):
        relay = MagicMock()
        relay.send = AsyncMock()
        processor = OutcomeProcessor(matcher_returning([decision(1), decision(2)]), relay)

        result = await processor.process(OUTCOME)

        assert result is ConsumeResult.ACK
        assert relay.send.await_count == 2

    async def test_one_failed_send_of_many(self):
        relay = MagicMock()
        relay.send = AsyncMock(side_effect=[None, DeliveryError("down"), None])
        decisions = [decision(1), decision(2), decision(3)]
        processor = OutcomeProcessor(matcher_returning(decisions), relay)

        result = await processor.process(OUTCOME)

        assert relay.send.await_count == 3
        assert result is ConsumeResult.ACK_WITH_PARTIAL_FAILURE

    async def test_matching_failure_skips_relay(self):
        relay = MagicMock()
        relay.send = AsyncMock()
        matcher = matcher_returning(error=MatchingError("db down", event_id="EVT-001"))

        result = await OutcomeProcessor(matcher, relay).process(OUTCOME)

        assert result is ConsumeResult.NACK_REDELIVER
        relay.send.assert_not_awaited()


class TestPulsarOutcomeConsumer:

    async def test_acknowledges_processed_message(self, fake_consumer):
        processor = MagicMock()
        processor.process = AsyncMock(return_value=ConsumeResult.ACK)
        consumer = PulsarOutcomeConsumer(fake_consumer, processor)
        msg = outcome_message()

        result = await consumer.handle_message(msg)

        assert result is ConsumeResult.ACK
        assert fake_consumer.acked == [msg]
        assert fake_consumer.nacked == []
        processor.process.assert_awaited_once_with(OUTCOME)

    async def test_acknowledges_partial_failure(self, fake_consumer):
        processor = MagicMock()
        processor.process = AsyncMock(return_value=ConsumeResult.ACK_WITH_PARTIAL_FAILURE)
        msg = outcome_message()

        await PulsarOutcomeConsumer(fake_consumer, processor).handle_message(msg)

        assert fake_consumer.acked == [msg]

    async def test_negative_acknowledges_failed_match(self, fake_consumer):
        processor = MagicMock()
        processor.process = AsyncMock(return_value=ConsumeResult.NACK_REDELIVER)
        msg = outcome_message()

        result = await PulsarOutcomeConsumer(fake_consumer, processor).handle_message(msg)

        assert result is ConsumeResult.NACK_REDELIVER
        assert fake_consumer.nacked == [msg]
        assert fake_consumer.acked == []

    async def test_malformed_message_is_dropped(self, fake_consumer):
        processor = MagicMock()
        processor.process = AsyncMock()
        msg = outcome_message(eventWinnerId="  ")

        await PulsarOutcomeConsumer(fake_consumer, processor).handle_message(msg)

        processor.process.assert_not_awaited()
        assert fake_consumer.acked == [msg]

    async def test_stop_closes_consumer(self, fake_consumer):
        consumer = PulsarOutcomeConsumer(fake_consumer, MagicMock())

        await consumer.stop()

        assert fake_consumer.closed


class TestRunOutcomeConsumers:

    async def test_consumers_receive_and_close_on_exit(self):
        msg = outcome_message()
        subscribed = [FakeConsumer([msg]), FakeConsumer()]
        client = MagicMock()
        client.subscribe.side_effect = subscribed
        processor = MagicMock()
        processor.process = AsyncMock(return_value=ConsumeResult.ACK)
        settings = Settings(
            outcome_consumer_count=2,
            outcome_receive_timeout_ms=10,
            outcome_receive_error_pause_seconds=0.01,
        )

        async with run_outcome_consumers(client, settings, processor) as consumers:
            assert [c.name for c in consumers] == ["outcome-consumer-0", "outcome-consumer-1"]
            for _ in range(100):
                if subscribed[0].acked:
                    break
                await asyncio.sleep(0.01)

        assert subscribed[0].acked == [msg]
        assert all(c.closed for c in subscribed)
        assert client.subscribe.call_count == 2
        processor.process.assert_awaited_once_with(OUTCOME)

    async def test_receive_errors_do_not_stop_the_loop(self):
        msg = outcome_message()
        flaky = FakeConsumer([msg], receive_errors=[pulsar.ConnectError(), pulsar.ConnectError()])
        healthy = FakeConsumer()
        client = MagicMock()
        client.subscribe.side_effect = [flaky, healthy]
        processor = MagicMock()
        processor.process = AsyncMock(return_value=ConsumeResult.ACK)
        settings = Settings(
            outcome_consumer_count=2,
            outcome_receive_timeout_ms=10,
            outcome_receive_error_pause_seconds=0.01,
        )

        async with run_outcome_consumers(client, settings, processor) as consumers:
            for _ in range(100):
                if flaky.acked:
                    break
                await asyncio.sleep(0.01)
            assert not consumers[0]._task.done()

        assert flaky.acked == [msg]
        assert flaky.closed
        assert healthy.closed

    async def test_crashed_consumer_still_releases_every_consumer(self):
        class BrokenNackConsumer(FakeConsumer):
            def negative_acknowledge(self, msg):
                raise RuntimeError("connection lost")

        broken = BrokenNackConsumer([outcome_message()])
        healthy = FakeConsumer()
        client = MagicMock()
        client.subscribe.side_effect = [broken, healthy]
        processor = MagicMock()
        processor.process = AsyncMock(side_effect=RuntimeError("boom"))
        settings = Settings(outcome_consumer_count=2, outcome_receive_timeout_ms=10)

        with pytest.raises(RuntimeError, match="connection lost"):
            async with run_outcome_consumers(client, settings, processor) as consumers:
                for _ in range(100):
                    if consumers[0]._task.done():
                        break
                    await asyncio.sleep(0.01)

        assert broken.closed
        assert healthy.closed
