"""Settlement relay.

Forwards settlement decisions from the outcome consumer to the settler.
Two interchangeable strategies share one contract:

- BrokerSettlementRelay: enqueue a Celery task on the settlement queue,
  settled out of process by a worker.
- DirectSettlementRelay: call the settler in the caller's task, no broker.

The strategy is chosen once at startup (``settlement_broker_enabled``) and
passed to the consumer, which never knows which one it holds.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable

import structlog
from celery import Celery

from app.config import Settings
from app.exceptions import DeliveryError
from app.schemas.messages import SettlementDecision
from app.services.settlement import Settler
from app.tasks import SETTLE_BET_TASK

logger = structlog.get_logger(__name__)


class SettlementRelay(ABC):
    """Forward a settlement decision to the settler."""

    @abstractmethod
    async def send(self, decision: SettlementDecision) -> None:
        """Forward one decision. Raises on failure."""

    async def close(self) -> None:
        """Release any broker resources held by the relay."""


class DirectSettlementRelay(SettlementRelay):
    """Settle in-process, bypassing the settlement queue."""

    def __init__(self, settler: Settler):
        self.settler = settler

    async def send(self, decision: SettlementDecision) -> None:
        logger.info(
            "direct_settlement",
            bet_id=decision.bet_id,
            user_id=decision.user_id,
            event_id=decision.event_id,
            market_id=decision.event_market_id,
            predicted_winner=decision.predicted_winner_id,
            actual_winner=decision.event_winner_id,
            amount=str(decision.bet_amount),
            result=decision.tag,
        )
        await self.settler.settle(decision)


class BrokerSettlementRelay(SettlementRelay):
    """Enqueue settlements as Celery tasks on the settlement queue."""

    def __init__(self, celery_app: Celery, queue: str, send_timeout: float = 3.0):
        self.celery_app = celery_app
        self.queue = queue
        self.send_timeout = send_timeout

    async def send(self, decision: SettlementDecision) -> None:
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._enqueue, decision),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError as e:
            raise DeliveryError(
                f"Timed out enqueueing settlement after {self.send_timeout}s",
                topic=self.queue,
                key=str(decision.bet_id),
            ) from e
        except Exception as e:
            raise DeliveryError(
                f"Failed to enqueue settlement: {e}",
                topic=self.queue,
                key=str(decision.bet_id),
            ) from e

        logger.info(
            "settlement_enqueued",
            bet_id=decision.bet_id,
            event_id=decision.event_id,
            tag=decision.tag,
            task_id=result.id,
        )

    def _enqueue(self, decision: SettlementDecision):
        return self.celery_app.send_task(
            SETTLE_BET_TASK,
            kwargs={"payload": decision.to_wire()},
            queue=self.queue,
            headers={"key": str(decision.bet_id), "tag": decision.tag},
            retry=False,
        )

    async def close(self) -> None:
        await asyncio.to_thread(self.celery_app.close)
        logger.info("settlement_relay_closed", queue=self.queue)


def build_settlement_relay(
    settings: Settings,
    settler: Settler,
    celery_app: Celery | None = None,
) -> SettlementRelay:
    """Select the relay strategy for this process."""
    if settings.settlement_broker_enabled:
        if celery_app is None:
            from app.tasks import celery_app
        logger.info("settlement_relay_selected", strategy="broker", queue=settings.settlement_queue)
        return BrokerSettlementRelay(
            celery_app,
            queue=settings.settlement_queue,
            send_timeout=settings.settlement_send_timeout_seconds,
        )

    logger.info("settlement_relay_selected", strategy="direct")
    return DirectSettlementRelay(settler)


@dataclass
class RelayReport:
    """Outcome of relaying one batch of decisions."""

    sent: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed)


async def relay_settlements(
    relay: SettlementRelay, decisions: Iterable[SettlementDecision]
) -> RelayReport:
    """
    Send every decision through the relay.

    A failed send is logged and recorded; it never stops the remaining sends.
    """
    report = RelayReport()
    for decision in decisions:
        try:
            await relay.send(decision)
            report.sent.append(decision.bet_id)
        except Exception as e:
            logger.error(
                "settlement_relay_failed",
                bet_id=decision.bet_id,
                event_id=decision.event_id,
                error=str(e),
            )
            report.failed[decision.bet_id] = str(e)
    return report
