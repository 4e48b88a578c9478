"""FastAPI application factory.

Assembles CORS, the lifecycle error mapping, the scheduling loop and all
API routers.  This module is the authoritative app object — app/main.py
re-exports it.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import build_orchestrator
from app.api.routes.alerts import router as alerts_router
from app.api.routes.audit import router as audit_router
from app.api.routes.certification import router as certification_router
from app.api.routes.health import router as health_router
from app.api.routes.notifications import router as notifications_router
from app.core.clock import SystemClock
from app.core.errors import AuditWriteError, NotificationNotFound, StateViolation, ValidationError
from app.core.logging import setup_logging
from app.core.settings import get_settings
from app.db.session import get_session_factory
from app.scheduling.processor import SchedulingProcessor

logger = logging.getLogger(__name__)


def _build_scheduler() -> SchedulingProcessor:
    settings = get_settings()
    clock = SystemClock()
    factory = get_session_factory()
    return SchedulingProcessor(
        factory,
        build_orchestrator(factory, clock),
        clock=clock,
        interval_seconds=settings.scheduler_interval_seconds,
        batch_size=settings.scheduler_batch_size,
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging()
    task = None
    stop_event = asyncio.Event()
    if get_settings().scheduler_enabled:
        task = asyncio.create_task(_build_scheduler().run_forever(stop_event))
    else:
        logger.info("Scheduler disabled; scheduled notifications will not be dispatched")
    yield
    if task is not None:
        stop_event.set()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS for browser clients of the dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})


@app.exception_handler(ValidationError)
async def _validation_error(_: Request, exc: ValidationError) -> JSONResponse:
    return _error(422, exc)


@app.exception_handler(StateViolation)
async def _state_violation(_: Request, exc: StateViolation) -> JSONResponse:
    return _error(409, exc)


@app.exception_handler(NotificationNotFound)
async def _not_found(_: Request, exc: NotificationNotFound) -> JSONResponse:
    return _error(404, exc)


@app.exception_handler(PermissionError)
async def _forbidden(_: Request, exc: PermissionError) -> JSONResponse:
    return _error(403, exc)


@app.exception_handler(AuditWriteError)
async def _audit_unavailable(_: Request, exc: AuditWriteError) -> JSONResponse:
    logger.error("Audit write failed; request rolled back: %s", exc)
    return _error(503, exc)


app.include_router(health_router)
app.include_router(notifications_router)
app.include_router(audit_router)
app.include_router(alerts_router)
app.include_router(certification_router)
