"""
LawDesk scheduling core - availability, booking, calendar sync and court-data queues.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from lawdesk.config import get_settings
from lawdesk.api.router import api_router
from lawdesk.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("lawdesk")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("LawDesk starting up (env=%s)", settings.app_env)

    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    worker_tasks: list[asyncio.Task] = []

    if settings.calendar_sync_enabled:
        from lawdesk.workers.calendar_sync import run_calendar_sync
        worker_tasks.append(asyncio.create_task(run_calendar_sync()))
    else:
        logger.info("Calendar sync worker disabled (CALENDAR_SYNC_ENABLED=false)")

    if settings.fetch_queue_enabled:
        if not settings.legalkart_user_id or not settings.legalkart_hash_key:
            logger.warning(
                "FETCH_QUEUE_ENABLED=true but Legalkart credentials are not set. "
                "Batches will be skipped until LEGALKART_USER_ID and LEGALKART_HASH_KEY are configured."
            )
        from lawdesk.workers.fetch_queue import run_fetch_queue_worker
        worker_tasks.append(asyncio.create_task(run_fetch_queue_worker()))
    else:
        logger.info("Fetch queue worker disabled (FETCH_QUEUE_ENABLED=false)")

    yield

    # Graceful shutdown - give workers time to finish current work
    logger.info("LawDesk shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        done, pending = await asyncio.wait(worker_tasks, timeout=10.0)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    logger.info("LawDesk shutdown complete - all %d workers stopped", len(worker_tasks))


def _cors_origins(settings) -> list[str]:
    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    if settings.app_env == "development":
        origins += ["http://localhost:3000", "http://localhost:5173"]
    return origins


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="LawDesk Scheduling",
        description="Appointment availability, booking and court-data sync for law firms",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.include_router(api_router)

    return application


app = create_app()
