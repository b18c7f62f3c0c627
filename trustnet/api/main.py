"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures the storage backend and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from trustnet.adapters.currency.static import StaticCurrencyCatalog
from trustnet.adapters.repository.memory import (
    InMemoryTransactionRepository,
    InMemoryUserDirectory,
)
from trustnet.adapters.repository.postgres import (
    PostgresTransactionRepository,
    PostgresUserDirectory,
    run_migrations,
)
from trustnet.api.v1 import operator_router as v1_operator_router
from trustnet.api.v1 import router as v1_router
from trustnet.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Trust network exchange API v1 - Match and settle transfer requests",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool and runs migrations (postgres backend)
    - Creates in-memory stores (memory backend)
    - Snapshots the currency catalog from settings
    - Closes connection pool on shutdown
    """
    settings = get_settings()

    logger.info("Starting application with %s storage...", settings.storage_backend)
    app.state.currencies = StaticCurrencyCatalog.from_settings(settings)

    pool = None
    if settings.storage_backend == "postgres":
        logger.info("Connecting to database...")
        pool = ConnectionPool(
            conninfo=settings.database_url,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
        )

        logger.info("Running database migrations...")
        run_migrations(pool)

        app.state.transactions = PostgresTransactionRepository(pool)
        app.state.users = PostgresUserDirectory(pool)
    else:
        app.state.transactions = InMemoryTransactionRepository()
        app.state.users = InMemoryUserDirectory(settings.initial_trust_score)

    app.state.pool = pool

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    if pool is not None:
        pool.close()
        logger.info("Database connection pool closed")


app = FastAPI(
    title="trustnet",
    description="Peer-to-peer currency exchange inside a referral trust network",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")
app.include_router(v1_operator_router, prefix="/v1")


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    if pool is not None:
        with pool.connection() as conn:
            conn.execute("SELECT 1")

    return {"status": "healthy"}
