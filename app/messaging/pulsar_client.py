"""Pulsar client lifecycle.

The client, the outcome producer and the outcome consumers are opened by
the application lifespan and closed on every exit path. Nothing here is a
module-level singleton; handles are passed to whoever needs them.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import pulsar
import structlog

from app.config import Settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def open_pulsar_client(settings: Settings) -> AsyncIterator[pulsar.Client]:
    """Open a Pulsar client for the configured service URL."""
    client = pulsar.Client(settings.pulsar_service_url)
    logger.info("pulsar_client_opened", service_url=settings.pulsar_service_url)
    try:
        yield client
    finally:
        await asyncio.to_thread(client.close)
        logger.info("pulsar_client_closed")


def create_outcome_producer(client: pulsar.Client, settings: Settings) -> pulsar.Producer:
    """
    Create the producer for the outcome topic.

    Key-based batching keeps each batch to a single key, which Key_Shared
    consumers require to preserve per-event ordering.
    """
    producer = client.create_producer(
        settings.outcome_topic,
        send_timeout_millis=int(settings.outcome_send_timeout_seconds * 1000),
        batching_type=pulsar.BatchingType.KeyBased,
    )
    logger.info("outcome_producer_created", topic=settings.outcome_topic)
    return producer


def subscribe_outcome_consumer(
    client: pulsar.Client, settings: Settings, index: int
) -> pulsar.Consumer:
    """Subscribe one consumer to the shared outcome subscription."""
    consumer = client.subscribe(
        settings.outcome_topic,
        subscription_name=settings.outcome_subscription,
        consumer_type=pulsar.ConsumerType.KeyShared,
        consumer_name=f"{settings.outcome_subscription}-{index}",
    )
    logger.info(
        "outcome_consumer_subscribed",
        topic=settings.outcome_topic,
        subscription=settings.outcome_subscription,
        index=index,
    )
    return consumer
