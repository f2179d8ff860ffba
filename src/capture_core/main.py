"""Capture metrics FastAPI application entry point."""
import asyncio
import contextlib
import logging
import os

import aiohttp
from fastapi import FastAPI
from redis.asyncio import Redis

from .api.routes import router as api_router
from .metrics.cache import DEFAULT_CLEANUP_INTERVAL_SECONDS
from .metrics.service import DataCaptureService


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared session, Redis connection and service for the process."""
    app.state.api_key = os.getenv("CAPTURE_API_KEY")
    if not app.state.api_key:
        logger.warning("CAPTURE_API_KEY not set; analytics endpoints will return 503")

    app.state.service = None
    if not (os.getenv("C7_APP_ID") and os.getenv("C7_API_KEY") and os.getenv("C7_TENANT_ID")):
        logger.warning("Commerce7 credentials not set; analytics endpoints disabled")
        yield
        return

    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
    cleanup_interval = float(
        os.getenv("CAPTURE_CACHE_CLEANUP_SECONDS", str(DEFAULT_CLEANUP_INTERVAL_SECONDS))
    )

    async with aiohttp.ClientSession() as session:
        redis = Redis.from_url(redis_url, decode_responses=False)
        service = DataCaptureService.from_env(session, redis=redis)
        cleanup_task = asyncio.create_task(
            service.cache.run_periodic_cleanup(cleanup_interval)
        )
        app.state.service = service
        try:
            yield
        finally:
            cleanup_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await cleanup_task
            await redis.aclose()
            app.state.service = None


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title="Capture Metrics API",
        version="0.1.0",
        description="Associate data capture and email opt-in rates from Commerce7",
        lifespan=lifespan,
    )

    app.include_router(api_router)

    return app


app = create_app()
