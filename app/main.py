"""BetSettler FastAPI application.

Sports bet settlement service: event outcomes are accepted over HTTP,
relayed through the outcome topic, matched against pending bets and
settled through the settlement relay.
"""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from app.api.routes import bets, health, outcomes
from app.config import get_settings
from app.messaging.outcome_consumer import OutcomeProcessor, run_outcome_consumers
from app.messaging.outcome_publisher import OutcomePublisher
from app.messaging.pulsar_client import create_outcome_producer, open_pulsar_client
from app.messaging.settlement_relay import build_settlement_relay
from app.models.base import async_session_factory, engine
from app.services.matching import BetMatcher
from app.services.settlement import Settler

VERSION = "1.0.0"

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Opens the broker handles, wires them into the relay components and
    releases everything in reverse order on shutdown.
    """
    logger.info(
        "starting_betsettler",
        version=VERSION,
        settlement_broker_enabled=settings.settlement_broker_enabled,
    )

    async with AsyncExitStack() as stack:
        stack.push_async_callback(engine.dispose)

        matcher = BetMatcher(async_session_factory)
        settler = Settler(async_session_factory)
        relay = build_settlement_relay(settings, settler)
        stack.push_async_callback(relay.close)

        client = await stack.enter_async_context(open_pulsar_client(settings))
        publisher = OutcomePublisher(
            create_outcome_producer(client, settings),
            topic=settings.outcome_topic,
            send_timeout=settings.outcome_send_timeout_seconds,
        )
        stack.push_async_callback(publisher.close)

        app.state.bet_matcher = matcher
        app.state.settler = settler
        app.state.outcome_publisher = publisher

        if settings.outcome_consumer_enabled:
            await stack.enter_async_context(
                run_outcome_consumers(client, settings, OutcomeProcessor(matcher, relay))
            )

        yield

        logger.info("shutting_down_betsettler")
        app.state.outcome_publisher = None


# Create FastAPI application
app = FastAPI(
    title="BetSettler",
    description="Sports bet settlement service",
    version=VERSION,
    lifespan=lifespan,
)

# Include API routers
app.include_router(health.router)
app.include_router(outcomes.router)
app.include_router(bets.router)


@app.get("/")
async def welcome():
    """Service information and available endpoints."""
    return {
        "application": "Sports Betting Settlement Service",
        "version": VERSION,
        "status": "running",
        "endpoints": {
            "Publish Event Outcome": "POST /api/events/outcomes",
            "Pending Bets": "GET /api/events/{event_id}/pending-bets",
            "Event Service Health": "GET /api/events/health",
            "List Bets": "GET /api/bets",
            "Get Bet": "GET /api/bets/{bet_id}",
            "Health": "GET /health",
            "Readiness": "GET /ready",
        },
    }


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Error handlers
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Map request validation failures to 400 with a per-field error map."""
    errors: dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][-1]) if error["loc"] else "body"
        if error["type"] == "missing":
            message = f"{field} is required"
        else:
            message = error["msg"].removeprefix("Value error, ")
        errors.setdefault(field, message)

    logger.warning("validation_failed", path=request.url.path, errors=errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "status": status.HTTP_400_BAD_REQUEST,
            "message": "Validation failed",
            "errors": errors,
        },
    )


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    """Catch-all 500 handler."""
    logger.error("server_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "message": f"An unexpected error occurred: {exc}",
            "status": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
