"""
FastAPI application exposing the feature catalog.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, status
from fastapi.responses import JSONResponse

from flagpole.db import check_database_health, create_all_tables_async, dispose_engine
from flagpole.feature_flags.router import feature_flags_router, register_exception_handlers
from flagpole.logging import setup_logging
from flagpole.settings import settings

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle events."""
    logger.info(
        "service.startup.begin",
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    )

    # Alembic owns the schema outside development and tests
    if settings.is_development or settings.is_testing:
        await create_all_tables_async()
        logger.info("database.tables.ensured")

    yield

    await dispose_engine()
    logger.info("service.shutdown.complete", service=settings.app_name)


def create_application() -> FastAPI:
    """Build the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    register_exception_handlers(app)
    app.include_router(feature_flags_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health() -> JSONResponse:
        healthy = await check_database_health()
        return JSONResponse(
            status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "healthy" if healthy else "unhealthy", "version": settings.app_version},
        )

    return app


app = create_application()
