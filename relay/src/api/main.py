"""
FastAPI application factory for the battery relay.

The lifespan loads RelaySettings, constructs the pipeline components (no
process-wide singletons), stores them on ``app.state`` for route handlers,
and runs the ingest pipeline as a background task for the lifetime of the
app. On shutdown the pipeline is signalled, drains what is already queued,
and is awaited.

CHANGELOG:
- 2026-10-16: Register subscribers router (STORY-012)
- 2026-10-15: Register samples, state and health routers (STORY-010, STORY-011)
- 2026-10-15: Initial creation (STORY-010)

TODO:
- None
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from relay.src.api.health import router as health_router
from relay.src.api.samples import router as samples_router
from relay.src.api.state import router as state_router
from relay.src.api.subscribers import router as subscribers_router
from relay.src.config import RelaySettings
from relay.src.health import HealthWriter
from relay.src.main import build_components, log_config_summary, run_pipeline
from relay.src.notifier import TelegramNotifier
from relay.src.publisher import Publisher

logger = logging.getLogger(__name__)

SERVICE_NAME = "Battery Relay"
SERVICE_VERSION = "0.1.0"


def create_app(
    settings: RelaySettings | None = None,
    *,
    publisher: Publisher | None = None,
    notifier: TelegramNotifier | None = None,
    start_pipeline: bool = True,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment at startup
            when None.
        publisher: Publisher override (tests inject mocks).
        notifier: Notifier override (tests inject mocks).
        start_pipeline: Run the ingest pipeline task during the lifespan.
            Disabled in tests that inspect the queue directly.

    Returns:
        FastAPI: The configured application.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan: build components, run and stop the pipeline.

        Startup:
            - Loads and validates settings (fails fast on bad config).
            - Builds components and the ingest queue.
            - Starts the pipeline task.

        Shutdown:
            - Signals the pipeline, which drains queued samples, and awaits it.
        """
        resolved = settings if settings is not None else RelaySettings()
        log_config_summary(resolved)

        components = build_components(
            resolved,
            publisher=publisher,
            notifier=notifier,
            health=HealthWriter(resolved.health_path),
        )
        if not components.notifier.enabled:
            logger.warning("TELEGRAM_BOT_TOKEN not set, alert notifications disabled")

        queue: asyncio.Queue = asyncio.Queue(maxsize=resolved.ingest_queue_size)
        shutdown_event = asyncio.Event()

        app.state.settings = resolved
        app.state.components = components
        app.state.queue = queue

        task: asyncio.Task | None = None
        if start_pipeline:
            task = asyncio.create_task(
                run_pipeline(
                    queue=queue,
                    components=components,
                    shutdown_event=shutdown_event,
                )
            )

        logger.info("%s ready", SERVICE_NAME)
        yield

        logger.info("%s shutting down", SERVICE_NAME)
        shutdown_event.set()
        if task is not None:
            await task

    app = FastAPI(
        title=SERVICE_NAME,
        description="Lead-acid battery state estimation and relay.",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.include_router(health_router)
    app.include_router(samples_router)
    app.include_router(state_router)
    app.include_router(subscribers_router)

    @app.get("/")
    async def root(request: Request) -> dict:
        """Service summary with endpoint index."""
        components = request.app.state.components
        return {
            "name": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "samples_received": components.store.samples_received,
            "endpoints": {
                "samples": "/v1/samples",
                "state": "/v1/state",
                "subscribers": "/v1/subscribers",
                "health": "/health",
                "healthz": "/healthz",
            },
        }

    return app


app = create_app()
