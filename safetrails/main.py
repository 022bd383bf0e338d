"""safetrails FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from safetrails.api import health, operator, sos, trips
from safetrails.core.clock import system_clock
from safetrails.core.config import settings
from safetrails.core.deps import get_store
from safetrails.core.errors import (
    ForbiddenError,
    InvalidTripStateError,
    NotFoundError,
    SafetyError,
    StateConflictError,
    StoreUnavailableError,
    ValidationError,
)
from safetrails.jobs import AsyncioScheduler, build_jobs, register_jobs
from safetrails.services.community import build_community_counter

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

STORE_RETRY_AFTER_SECONDS = 5

_STATUS_BY_ERROR: list[tuple[type[SafetyError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidTripStateError, status.HTTP_409_CONFLICT),
    (StateConflictError, status.HTTP_409_CONFLICT),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (StoreUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = AsyncioScheduler(system_clock)
    app.state.scheduler = scheduler
    app.state.jobs = []
    if settings.scheduler_enabled:
        jobs = build_jobs(get_store(), system_clock, settings, build_community_counter(settings))
        register_jobs(scheduler, jobs)
        app.state.jobs = jobs
        await scheduler.start()
    else:
        logger.info("Scheduler disabled; reconciliation jobs will not run")
    try:
        yield
    finally:
        if scheduler.running:
            await scheduler.stop()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)


@app.exception_handler(SafetyError)
async def safety_error_handler(request: Request, exc: SafetyError) -> JSONResponse:
    """Map core outcomes to HTTP status codes."""
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for error_type, http_status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            code = http_status
            break
    content: dict = {"detail": exc.message, "code": exc.code}
    headers = None
    if isinstance(exc, ValidationError):
        content["fields"] = exc.fields
    if isinstance(exc, StoreUnavailableError):
        headers = {"Retry-After": str(STORE_RETRY_AFTER_SECONDS)}
    if code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content=content, headers=headers)


app.include_router(health.router)
app.include_router(trips.router, prefix=settings.api_prefix)
app.include_router(sos.router, prefix=settings.api_prefix)
app.include_router(operator.router, prefix=settings.api_prefix)
