"""
FastAPI Application Entry Point.

This is the main application file for the Crataegus location server.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import timedelta

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from crataegus.app.api.v1.router import router as api_v1_router
from crataegus.app.core.config import settings
from crataegus.app.core.exceptions import (
    AppException,
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler
)
from crataegus.app.core.observability import ObservabilityMiddleware
from crataegus.app.services.backup import BackupManager
from crataegus.app.services.ingestion import IngestionService
from crataegus.app.services.location_store import LocationStore
from crataegus.app.services.normalizer import CoordinateNormalizer, GeoidContext

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Opens the location store and creates tables.
    2. Wires the ingestion service and starts periodic backups if configured.
    3. Stops backups and closes the store on shutdown.
    """
    store = LocationStore.from_path(
        settings.database_path,
        echo=settings.db_echo,
        busy_timeout_seconds=settings.db_busy_timeout_seconds,
    )
    try:
        await store.initialize()
    except AppException:
        logger.critical("Location store at %s is unavailable", settings.database_path)
        raise

    normalizer = CoordinateNormalizer(GeoidContext())
    app.state.store = store
    app.state.ingestion_service = IngestionService(store, normalizer, settings.user_check_mode)
    app.state.backup_manager = BackupManager.from_settings(store)

    backup_task = None
    if settings.backup_interval_hours > 0:
        backup_task = asyncio.create_task(
            app.state.backup_manager.run_periodically(
                timedelta(hours=settings.backup_interval_hours)
            )
        )

    yield

    if backup_task is not None:
        backup_task.cancel()
        with suppress(asyncio.CancelledError):
            await backup_task
    await store.close()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Location history server for the GPSLogger app",
    lifespan=lifespan,
)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.add_middleware(ObservabilityMiddleware)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Crataegus",
        "docs": "/docs",
        "health": "/health",
    }
