"""Message relay components: outcome topic and settlement relay."""

from app.messaging.outcome_consumer import (
    ConsumeResult,
    OutcomeProcessor,
    PulsarOutcomeConsumer,
    decide_ack,
)
from app.messaging.outcome_publisher import OutcomePublisher
from app.messaging.settlement_relay import (
    BrokerSettlementRelay,
    DirectSettlementRelay,
    RelayReport,
    SettlementRelay,
    build_settlement_relay,
    relay_settlements,
)

__all__ = [
    "BrokerSettlementRelay",
    "ConsumeResult",
    "DirectSettlementRelay",
    "OutcomeProcessor",
    "OutcomePublisher",
    "PulsarOutcomeConsumer",
    "RelayReport",
    "SettlementRelay",
    "build_settlement_relay",
    "decide_ack",
    "relay_settlements",
]
