"""Celery tasks for BetSettler.

This module configures the Celery application that carries settlement
commands from the outcome consumer to the settlement workers. Only used
when ``settlement_broker_enabled`` is set; otherwise settlements are
applied in-process.

Run a worker with:
    celery -A app.tasks worker -Q bet-settlements
"""

from celery import Celery

from app.config import get_settings

settings = get_settings()

SETTLE_BET_TASK = "app.tasks.settlement.settle_bet_task"

# Create Celery application
celery_app = Celery(
    "betsettler",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.tasks.settlement",
    ],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # Routing
    task_default_queue=settings.settlement_queue,
    task_routes={SETTLE_BET_TASK: {"queue": settings.settlement_queue}},
    # Delivery: acknowledge after the settlement ran, redeliver on worker loss
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    task_time_limit=60,
    task_soft_time_limit=50,
    # Result expiration
    result_expires=3600,  # 1 hour
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)
