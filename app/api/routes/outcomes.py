"""Event outcome API endpoints.

Publishing an outcome is fire-and-forget: the request is accepted (202)
once the outcome has been handed to the outcome topic, while matching and
settlement happen asynchronously downstream.
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.api.dependencies import get_bet_matcher, get_outcome_publisher
from app.messaging.outcome_publisher import OutcomePublisher
from app.schemas.messages import EventOutcome
from app.services.matching import BetMatcher

router = APIRouter(prefix="/api/events", tags=["events"])
logger = structlog.get_logger(__name__)

BLANK_MESSAGES = {
    "event_id": "Event ID cannot be blank",
    "event_name": "Event name cannot be blank",
    "event_winner_id": "Event winner ID cannot be blank",
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PublishEventRequest(CamelModel):
    """Request body for publishing an event outcome."""

    event_id: str
    event_name: str
    event_winner_id: str

    @field_validator("event_id", "event_name", "event_winner_id")
    @classmethod
    def not_blank(cls, value: str, info) -> str:
        if not value.strip():
            raise ValueError(BLANK_MESSAGES[info.field_name])
        return value

    def to_outcome(self) -> EventOutcome:
        return EventOutcome(
            event_id=self.event_id,
            event_name=self.event_name,
            event_winner_id=self.event_winner_id,
        )


class ApiResponse(CamelModel):
    """Standard API response wrapper."""

    message: str
    event_id: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    status: int

    @classmethod
    def success(cls, message: str, event_id: str) -> "ApiResponse":
        return cls(message=message, event_id=event_id, status=status.HTTP_202_ACCEPTED)

    @classmethod
    def error(cls, message: str, status_code: int) -> "ApiResponse":
        return cls(message=message, status=status_code)

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status,
            content=self.model_dump(mode="json", by_alias=True, exclude_none=True),
        )


class PendingBetsResponse(CamelModel):
    event_id: str
    pending_bets: int


@router.post("/outcomes", status_code=status.HTTP_202_ACCEPTED)
async def publish_event_outcome(
    request: PublishEventRequest,
    publisher: OutcomePublisher = Depends(get_outcome_publisher),
) -> JSONResponse:
    """
    Publish an event outcome to the outcome topic.

    Returns 202 Accepted immediately; bets are matched and settled
    asynchronously.
    """
    logger.info(
        "event_outcome_request",
        event_id=request.event_id,
        event_name=request.event_name,
        winner_id=request.event_winner_id,
    )

    try:
        publisher.submit(request.to_outcome())
    except Exception as e:
        logger.error(
            "event_outcome_publish_rejected",
            event_id=request.event_id,
            error=str(e),
        )
        return ApiResponse.error(
            f"Failed to publish event outcome: {e}",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ).to_response()

    return ApiResponse.success(
        "Event outcome published successfully", request.event_id
    ).to_response()


@router.get("/health")
async def events_health() -> JSONResponse:
    """Health check for the event outcome service."""
    return ApiResponse(
        message="Event outcome service is running", status=status.HTTP_200_OK
    ).to_response()


@router.get("/{event_id}/pending-bets", response_model=PendingBetsResponse)
async def pending_bets(
    event_id: str,
    matcher: BetMatcher = Depends(get_bet_matcher),
) -> PendingBetsResponse:
    """Number of bets on an event still awaiting settlement."""
    count = await matcher.pending_bet_count(event_id)
    return PendingBetsResponse(event_id=event_id, pending_bets=count)
