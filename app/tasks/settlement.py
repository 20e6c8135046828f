"""Settlement queue consumer.

Each task message carries one serialized settlement decision. The worker
validates the payload and hands it to the settler. A missing bet makes the
task fail; with late acknowledgement the broker's own policy decides
whether the message is redelivered.
"""

import asyncio
from typing import Any

import structlog
from celery import shared_task

from app.models.base import get_task_session_factory
from app.schemas.messages import SettlementDecision
from app.services.settlement import Settler

logger = structlog.get_logger(__name__)


async def settle_payload(payload: dict[str, Any], settler: Settler) -> dict[str, Any]:
    """Decode a settlement payload and settle the referenced bet."""
    decision = SettlementDecision.model_validate(payload)
    logger.info(
        "settlement_received",
        bet_id=decision.bet_id,
        tag=decision.tag,
    )
    bet = await settler.settle(decision)
    return {
        "bet_id": bet.id,
        "status": bet.status.value,
        "settled_at": bet.settled_at.isoformat() if bet.settled_at else None,
    }


# =============================================================================
# Celery Task Wrappers
# =============================================================================

@shared_task(
    name="app.tasks.settlement.settle_bet_task",
    acks_late=True,
    reject_on_worker_lost=True,
)
def settle_bet_task(payload: dict[str, Any]) -> dict[str, Any]:
    """
    Celery task settling a single bet.

    Runs on the settlement queue workers.
    """
    async def _run():
        async with get_task_session_factory() as session_factory:
            return await settle_payload(payload, Settler(session_factory))

    return asyncio.run(_run())
