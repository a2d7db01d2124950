"""FastAPI application entry point."""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clinicops.api.errors import register_exception_handlers
from clinicops.api.v1.router import api_router
from clinicops.core.config import settings
from clinicops.core.logging import setup_logging
from clinicops.db.init_db import init_db
from clinicops.db.session import AsyncSessionLocal
from clinicops.services.auto_confirmation import AutoConfirmationScheduler

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup
    logger.info(f"Starting ClinicOps API (env={settings.env})")

    if settings.init_db_on_startup and settings.is_dev:
        logger.info("Initializing database...")
        async with AsyncSessionLocal() as session:
            await init_db(session)

    scheduler_task: asyncio.Task | None = None
    if settings.auto_confirm_in_process:
        scheduler = AutoConfirmationScheduler(AsyncSessionLocal)
        scheduler_task = asyncio.create_task(scheduler.run_forever())

    yield

    # Shutdown
    if scheduler_task is not None:
        scheduler_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler_task
    logger.info("Shutting down ClinicOps API")


# Create FastAPI application
app = FastAPI(
    title="ClinicOps API",
    description="Role-scoped clinic operations and appointment lifecycle",
    version="0.1.0",
    docs_url="/docs" if settings.is_dev else None,
    redoc_url="/redoc" if settings.is_dev else None,
    openapi_url="/openapi.json" if settings.is_dev else None,
    lifespan=lifespan,
)

# CORS (dev only)
if settings.is_dev:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

register_exception_handlers(app)

# Include API router
app.include_router(api_router, prefix="/api/v1")


# Root endpoint
@app.get("/", include_in_schema=False)
async def root() -> dict:
    """Root endpoint redirect to docs."""
    return {
        "service": "ClinicOps API",
        "version": "0.1.0",
        "docs": "/docs" if settings.is_dev else "Disabled in production",
    }
