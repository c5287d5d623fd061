"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.logging import setup_logging
from app.db.init_db import create_tables
from app.db.session import AsyncSessionLocal, engine
from app.services.risk_alerts import build_risk_alert_service
from app.tasks.risk_scan import RiskScanScheduler

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

SERVICE_NAME = "Task Risk Engine API"
SERVICE_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(f"Starting {SERVICE_NAME} (env={settings.env})")

    if settings.init_db_on_startup:
        logger.info("Initializing database...")
        await create_tables(engine)

    service = await build_risk_alert_service(settings, AsyncSessionLocal)
    app.state.risk_service = service

    scheduler: RiskScanScheduler | None = None
    if settings.risk_scan_enabled:
        scheduler = RiskScanScheduler(service, settings.risk_scan_interval_seconds)
        scheduler.start()

    yield

    # Shutdown
    logger.info(f"Shutting down {SERVICE_NAME}")
    if scheduler is not None:
        scheduler.stop()
    await service.aclose()
    app.state.risk_service = None


# Create FastAPI application
app = FastAPI(
    title=SERVICE_NAME,
    description="Deadline, blocker and overdue alerts for a shared task table",
    version=SERVICE_VERSION,
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions."""
    logger.exception(f"Unhandled exception: {exc}")

    # Don't expose internal errors in production
    if settings.is_prod:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc)},
    )


# Include API router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint with service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "docs": "/docs" if settings.is_dev else "Disabled in production",
    }
