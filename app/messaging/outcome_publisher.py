"""Outcome relay producer.

Publishes event outcomes to the outcome topic with the event id as the
partition key, so every consumer sees one event's outcomes in publish
order. ``publish`` waits for the broker receipt; ``submit`` is the
fire-and-forget variant used by the HTTP layer, which reports failures in
a done-callback instead of to the caller.
"""

import asyncio

import pulsar
import structlog

from app.exceptions import DeliveryError
from app.schemas.messages import EventOutcome

logger = structlog.get_logger(__name__)


class OutcomePublisher:
    """Publish event outcomes to the outcome topic."""

    def __init__(self, producer: pulsar.Producer, topic: str, send_timeout: float = 3.0):
        self.producer = producer
        self.topic = topic
        self.send_timeout = send_timeout
        self._closed = False
        self._pending: set[asyncio.Task] = set()

    async def publish(self, outcome: EventOutcome) -> None:
        """
        Publish an outcome and wait until the broker has queued it durably.

        Raises:
            DeliveryError: if the broker rejects the send, times out, or the
                publisher is closed
        """
        self._ensure_open(outcome)
        await self._send(outcome.to_json_bytes(), outcome)

    def submit(self, outcome: EventOutcome) -> asyncio.Task:
        """
        Publish in the background.

        Errors raised before the send is handed to the broker (closed
        publisher, serialization) reach the caller; delivery errors are
        logged by the completion callback.
        """
        self._ensure_open(outcome)
        payload = outcome.to_json_bytes()

        task = asyncio.create_task(self._send(payload, outcome))
        self._pending.add(task)
        task.add_done_callback(lambda t: self._on_submitted(t, outcome))
        return task

    async def close(self) -> None:
        """Wait for in-flight publishes, then close the producer."""
        self._closed = True
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await asyncio.to_thread(self.producer.close)
        logger.info("outcome_publisher_closed", topic=self.topic)

    def _ensure_open(self, outcome: EventOutcome) -> None:
        if self._closed:
            raise DeliveryError(
                "Outcome publisher is closed", topic=self.topic, key=outcome.event_id
            )

    async def _send(self, payload: bytes, outcome: EventOutcome) -> None:
        loop = asyncio.get_running_loop()
        receipt: asyncio.Future = loop.create_future()

        def _resolve(result, message_id) -> None:
            if receipt.done():
                return
            if result == pulsar.Result.Ok:
                receipt.set_result(message_id)
            else:
                receipt.set_exception(
                    DeliveryError(
                        f"Broker rejected outcome: {result}",
                        topic=self.topic,
                        key=outcome.event_id,
                    )
                )

        def _on_sent(result, message_id) -> None:
            # Runs on a Pulsar client thread
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve, result, message_id)

        logger.debug(
            "publishing_event_outcome",
            topic=self.topic,
            key=outcome.event_id,
            event_name=outcome.event_name,
        )

        try:
            self.producer.send_async(payload, _on_sent, partition_key=outcome.event_id)
        except Exception as e:
            raise DeliveryError(
                f"Failed to send outcome: {e}", topic=self.topic, key=outcome.event_id
            ) from e

        try:
            message_id = await asyncio.wait_for(receipt, timeout=self.send_timeout)
        except asyncio.TimeoutError as e:
            raise DeliveryError(
                f"Timed out waiting for broker receipt after {self.send_timeout}s",
                topic=self.topic,
                key=outcome.event_id,
            ) from e

        logger.info(
            "event_outcome_published",
            topic=self.topic,
            event_id=outcome.event_id,
            winner_id=outcome.event_winner_id,
            message_id=str(message_id),
        )

    def _on_submitted(self, task: asyncio.Task, outcome: EventOutcome) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("event_outcome_publish_cancelled", event_id=outcome.event_id)
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "event_outcome_publish_failed",
                topic=self.topic,
                event_id=outcome.event_id,
                error=str(error),
            )
