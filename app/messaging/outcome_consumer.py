"""Outcome consumption.

For every outcome message:

    RECEIVED -> MATCHED -> RELAYED (once per decision) -> ACKNOWLEDGED
    RECEIVED -> FAILED (negatively acknowledged, redelivered by the broker)

The acknowledgement decision is a pure function of the matching and relay
results (``decide_ack``). A failed match leaves the message redeliverable;
failed relay sends are logged but the message is still acknowledged.

PulsarOutcomeConsumer is the transport adapter. Each instance processes
its messages one at a time, so message N+1 starts only once message N's
acknowledgement is decided. Several instances share a Key_Shared
subscription: different events run concurrently, one event stays serial.
"""

import asyncio
import enum
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager

import pulsar
import structlog
from pydantic import ValidationError

from app.config import Settings
from app.messaging.pulsar_client import subscribe_outcome_consumer
from app.messaging.settlement_relay import RelayReport, SettlementRelay, relay_settlements
from app.schemas.messages import EventOutcome
from app.services.matching import BetMatcher

logger = structlog.get_logger(__name__)


class ConsumeResult(enum.Enum):
    """Acknowledgement decision for one outcome message."""

    ACK = "ACK"
    NACK_REDELIVER = "NACK_REDELIVER"
    ACK_WITH_PARTIAL_FAILURE = "ACK_WITH_PARTIAL_FAILURE"

    @property
    def acknowledges(self) -> bool:
        return self is not ConsumeResult.NACK_REDELIVER


def decide_ack(report: RelayReport | None) -> ConsumeResult:
    """
    Acknowledgement policy.

    ``report`` is None when matching failed.
    """
    if report is None:
        return ConsumeResult.NACK_REDELIVER
    if report.has_failures:
        return ConsumeResult.ACK_WITH_PARTIAL_FAILURE
    return ConsumeResult.ACK


class OutcomeProcessor:
    """Match an outcome and relay the resulting settlements."""

    def __init__(self, matcher: BetMatcher, relay: SettlementRelay):
        self.matcher = matcher
        self.relay = relay

    async def process(self, outcome: EventOutcome) -> ConsumeResult:
        try:
            decisions = await self.matcher.match_bets(outcome)
        except Exception as e:
            logger.error(
                "event_outcome_processing_failed",
                event_id=outcome.event_id,
                error=str(e),
            )
            return decide_ack(None)

        if not decisions:
            logger.info("no_bets_to_settle", event_id=outcome.event_id)
            return decide_ack(RelayReport())

        logger.info(
            "relaying_settlements",
            event_id=outcome.event_id,
            count=len(decisions),
        )
        report = await relay_settlements(self.relay, decisions)
        result = decide_ack(report)

        logger.info(
            "event_outcome_processed",
            event_id=outcome.event_id,
            sent=len(report.sent),
            failed=len(report.failed),
            result=result.value,
        )
        return result


class PulsarOutcomeConsumer:
    """Receive loop for one consumer on the outcome subscription."""

    def __init__(
        self,
        consumer: pulsar.Consumer,
        processor: OutcomeProcessor,
        receive_timeout_ms: int = 1000,
        name: str = "outcome-consumer",
        error_pause: float = 1.0,
    ):
        self.consumer = consumer
        self.processor = processor
        self.receive_timeout_ms = receive_timeout_ms
        self.name = name
        self.error_pause = error_pause
        self._running = False
        self._task: asyncio.Task | None = None

    def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self.run(), name=self.name)
        logger.info("outcome_consumer_started", consumer=self.name)

    async def stop(self) -> None:
        self._running = False
        try:
            if self._task is not None:
                await self._task
        finally:
            self._task = None
            await asyncio.to_thread(self.consumer.close)
            logger.info("outcome_consumer_stopped", consumer=self.name)

    async def run(self) -> None:
        while self._running:
            try:
                msg = await asyncio.to_thread(self._receive)
            except pulsar.PulsarException as e:
                logger.error("outcome_receive_failed", consumer=self.name, error=repr(e))
                await asyncio.sleep(self.error_pause)
                continue
            if msg is None:
                continue
            try:
                await self.handle_message(msg)
            except Exception as e:
                logger.error(
                    "outcome_message_failed",
                    consumer=self.name,
                    message_id=str(msg.message_id()),
                    error=str(e),
                )
                self.consumer.negative_acknowledge(msg)

    async def handle_message(self, msg: pulsar.Message) -> ConsumeResult:
        """Process one delivered message and settle its acknowledgement."""
        message_id = str(msg.message_id())
        try:
            outcome = EventOutcome.model_validate_json(msg.data())
        except ValidationError as e:
            # Redelivery cannot fix a malformed payload
            logger.error(
                "outcome_message_malformed",
                consumer=self.name,
                message_id=message_id,
                key=msg.partition_key(),
                error=str(e),
            )
            self.consumer.acknowledge(msg)
            return ConsumeResult.ACK_WITH_PARTIAL_FAILURE

        logger.info(
            "event_outcome_received",
            consumer=self.name,
            event_id=outcome.event_id,
            winner_id=outcome.event_winner_id,
            message_id=message_id,
            redelivery_count=msg.redelivery_count(),
        )

        result = await self.processor.process(outcome)
        if result.acknowledges:
            self.consumer.acknowledge(msg)
            logger.debug("outcome_message_acknowledged", message_id=message_id)
        else:
            self.consumer.negative_acknowledge(msg)
            logger.warning(
                "outcome_message_not_acknowledged",
                event_id=outcome.event_id,
                message_id=message_id,
            )
        return result

    def _receive(self) -> pulsar.Message | None:
        try:
            return self.consumer.receive(timeout_millis=self.receive_timeout_ms)
        except pulsar.Timeout:
            return None


@asynccontextmanager
async def run_outcome_consumers(
    client: pulsar.Client, settings: Settings, processor: OutcomeProcessor
) -> AsyncIterator[list[PulsarOutcomeConsumer]]:
    """Subscribe and start the configured number of consumers; stop them on exit."""
    consumers: list[PulsarOutcomeConsumer] = []
    async with AsyncExitStack() as stack:
        for index in range(settings.outcome_consumer_count):
            consumer = PulsarOutcomeConsumer(
                subscribe_outcome_consumer(client, settings, index),
                processor,
                receive_timeout_ms=settings.outcome_receive_timeout_ms,
                name=f"outcome-consumer-{index}",
                error_pause=settings.outcome_receive_error_pause_seconds,
            )
            stack.push_async_callback(consumer.stop)
            consumer.start()
            consumers.append(consumer)
        yield consumers
