"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures logging, storage and the email provider in lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, status
from psycopg_pool import ConnectionPool

from src.adapters.email.console import ConsoleEmailProvider
from src.adapters.email.resend import ResendEmailProvider
from src.adapters.repository.memory import (
    MemoryDatabase,
    MemoryOutboxRepository,
    MemoryReviewRepository,
)
from src.adapters.repository.postgres import (
    PostgresOutboxRepository,
    PostgresReviewRepository,
    run_migrations,
)
from src.api.v1 import router as v1_router
from src.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Registration review API v1 - Review checklists, deep-link updates "
        "and the email outbox",
    },
]


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_email_provider(settings: Settings) -> ConsoleEmailProvider | ResendEmailProvider:
    """Resend when an API key is configured, console logging otherwise."""
    if settings.resend_api_key:
        logger.info("Email provider: resend")
        return ResendEmailProvider(
            api_key=settings.resend_api_key,
            from_email=settings.email_from,
            api_url=settings.resend_api_url,
        )
    logger.info("Email provider: console")
    return ConsoleEmailProvider()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates the storage backend (PostgreSQL pool + migrations, or in-memory)
    - Creates the email provider
    - Closes connection pool and provider on shutdown
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("Starting application...")

    pool: ConnectionPool | None = None
    if settings.storage_backend == "memory":
        logger.info("Using in-memory storage")
        db = MemoryDatabase()
        app.state.review_repository = MemoryReviewRepository(db)
        app.state.outbox_repository = MemoryOutboxRepository(db)
    else:
        logger.info("Connecting to database...")

        # Create connection pool with explicit sizing
        pool = ConnectionPool(
            conninfo=settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
        )

        # Run migrations
        logger.info("Running database migrations...")
        run_migrations(pool)

        app.state.review_repository = PostgresReviewRepository(pool)
        app.state.outbox_repository = PostgresOutboxRepository(pool)

    # Store pool in app state for the health check
    app.state.pool = pool
    app.state.email_provider = build_email_provider(settings)

    logger.info("Application startup complete (email mode %s)", settings.email_mode.value)

    yield

    # Shutdown
    logger.info("Shutting down application...")
    provider = app.state.email_provider
    if isinstance(provider, ResendEmailProvider):
        provider.close()
    if pool is not None:
        pool.close()
        logger.info("Database connection pool closed")


app = FastAPI(
    title="reviewgate",
    description="Registration review API - Multi-dimension review state machine, "
    "single-use deep links and a capped email outbox",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy, 503 otherwise.
    The in-memory backend is always healthy.
    """
    pool = request.app.state.pool
    if pool is None:
        return {"status": "healthy", "storage": "memory"}

    # Validate database connectivity
    try:
        with pool.connection() as conn:
            conn.execute("SELECT 1")
    except Exception as e:
        logger.error("Health check failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable"
        ) from None

    return {"status": "healthy", "storage": "postgres"}
