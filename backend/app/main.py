"""
Waitlist Rebooking Engine - Main Application Entry Point

Reacts to booking cancellations by reallocating the freed slot:
- Priority-tier waitlisted users are auto-booked in one transactional attempt
- Everyone else on the waitlist is told the spot opened
- A nightly job expires waitlist entries whose date has passed
- Structured logging with reaction correlation, Prometheus metrics
"""

import asyncio
from contextlib import asynccontextmanager
from fastapi import FastAPI

from app.core.config import get_settings
from app.core.logging import setup_logging, get_logger
from app.core.metrics import metrics_endpoint
from app.api.router import api_router
from app.api.middleware import RequestLoggingMiddleware
from app.infrastructure.redis_client import get_redis, close_redis
from app.infrastructure.booking_event_stream import RedisStreamEventSource
from app.scheduler.sweep_job import build_scheduler
from app.services.engine_factory import get_allocator, get_sweeper
from app.services.push_service import ExpoPushTransport

settings = get_settings()


def log_consumer_exit(task: asyncio.Task) -> None:
    """Done callback for the booking event consumer task."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        get_logger(__name__).error(
            "booking_event_stream_crashed",
            error=str(exc),
            exc_info=(type(exc), exc, exc.__traceback__),
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without duplicate-event markers")

    allocator = get_allocator()

    scheduler = None
    if settings.SWEEP_ENABLED:
        scheduler = build_scheduler(get_sweeper(), settings)
        scheduler.start()
        logger.info("sweep_scheduled", cron=settings.SWEEP_CRON, timezone=settings.SWEEP_TIMEZONE)
    app.state.scheduler = scheduler

    event_source = None
    consumer_task = None
    if settings.EVENT_STREAM_ENABLED:
        event_source = RedisStreamEventSource(
            get_redis,
            settings.EVENT_STREAM_KEY,
            settings.EVENT_STREAM_GROUP,
            settings.EVENT_STREAM_CONSUMER,
            block_ms=settings.EVENT_STREAM_BLOCK_MS,
        )
        consumer_task = asyncio.create_task(event_source.run(allocator.handle_booking_update))
        consumer_task.add_done_callback(log_consumer_exit)

    yield

    if event_source is not None:
        await event_source.stop()
        # A crashed consumer was already logged by log_consumer_exit
        await asyncio.gather(consumer_task, return_exceptions=True)
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    transport = allocator.dispatcher.transport
    if isinstance(transport, ExpoPushTransport):
        await transport.aclose()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Reallocates cancelled slots to waitlisted users by subscriber tier",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    redis_client = await get_redis()
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "redis": "connected" if redis_client else "disabled",
        "sweep_scheduled": bool(scheduler and scheduler.running),
    }


@app.get("/metrics", include_in_schema=False)
def metrics():
    return metrics_endpoint()
