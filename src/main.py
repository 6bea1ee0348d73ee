"""FastAPI application entry point for the AML pattern engine."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from src.api.middleware.error_handler import (
    global_exception_handler,
    isolation_exception_handler,
)
from src.api.middleware.logging import StructuredLoggingMiddleware
from src.api.routes.aml import router as aml_router
from src.api.routes.health import router as health_router
from src.config import settings
from src.domains.aml.engine import AMLMonitoringEngine
from src.domains.aml.errors import IsolationError
from src.shared.logging import setup_logging

logger = structlog.get_logger()

# Track app start time for uptime calculation
APP_START_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: build the engine on startup, release it on shutdown."""
    global APP_START_TIME
    APP_START_TIME = time.time()
    setup_logging(settings.log_level)

    logger.info(
        "aml_engine_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    # Tests install their own engine before startup
    owns_engine = getattr(app.state, "aml_engine", None) is None
    if owns_engine:
        app.state.aml_engine = AMLMonitoringEngine.from_settings(settings)

    yield

    if owns_engine:
        await app.state.aml_engine.close()
        app.state.aml_engine = None
    logger.info("aml_engine_shutting_down")


app = FastAPI(
    title="AML Pattern Engine",
    description="Transaction risk-pattern detection for card payments",
    version=settings.app_version,
    lifespan=lifespan,
)

# Structured logging middleware
app.add_middleware(StructuredLoggingMiddleware)

# Exception handlers
app.add_exception_handler(IsolationError, isolation_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Register routers
app.include_router(health_router)
app.include_router(aml_router)


def get_uptime() -> int:
    """Get application uptime in seconds."""
    if APP_START_TIME == 0.0:
        return 0
    return int(time.time() - APP_START_TIME)
