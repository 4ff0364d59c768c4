from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from starlette.requests import Request

from jobagent.api.router import api_router
from jobagent.automation.fields import get_field_detector
from jobagent.automation.sessions import get_session_manager
from jobagent.core.config import get_settings
from jobagent.core.errors import register_exception_handlers
from jobagent.core.telemetry import TelemetryRuntime, configure_logging, setup_api_telemetry, shutdown_api_telemetry
from jobagent.services.notifications import get_broadcaster
from jobagent.services.oracle import get_field_detection_oracle, get_scoring_oracle
from jobagent.services.repository import get_repository
from jobagent.worker.main import ingestion_loop

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    stop = asyncio.Event()
    worker_task: asyncio.Task[None] | None = None
    if settings.worker_enabled:
        worker_task = asyncio.create_task(ingestion_loop(settings, stop))
        logger.info("in-process ingestion worker started interval_seconds=%s", settings.ingestion_interval_seconds)
    try:
        yield
    finally:
        if worker_task is not None:
            stop.set()
            worker_task.cancel()
            try:
                await worker_task
            except asyncio.CancelledError:
                pass
        terminated = await get_session_manager().kill()
        if terminated:
            logger.info("closed automation sessions on shutdown count=%s", terminated)
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        await get_repository().close()
        for provider in (
            get_session_manager,
            get_field_detector,
            get_field_detection_oracle,
            get_scoring_oracle,
            get_broadcaster,
            get_repository,
        ):
            provider.cache_clear()


configure_logging()
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)
register_exception_handlers(app)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


app.include_router(api_router)
