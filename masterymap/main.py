"""
Application entry point.

Creates the FastAPI application and wires together:
- Routers
- Error handlers (taxonomy-to-HTTP mapping, route-not-found, error routing)
- Security middleware (headers, rate limiting)
- Logging configuration and request logging
- Database pool lifecycle

No business logic belongs here.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from masterymap.core.config import settings
from masterymap.infrastructure.database.pool import ConnectionPool
from masterymap.infrastructure.database.retry import probe_database_connection
from masterymap.interfaces.dependencies import build_pool
from masterymap.interfaces.health import router as health_router
from masterymap.shared.errors.handlers import register_error_handlers
from masterymap.shared.logging import RequestLoggingMiddleware, configure_logging
from masterymap.shared.security.headers import SecurityHeadersMiddleware
from masterymap.shared.security.rate_limiting import limiter

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: verify the database, dispose the pool on exit."""
    pool = app.state.pool
    if pool is not None:
        logger.info("Testing database connection...")
        connected = await run_in_threadpool(
            probe_database_connection,
            pool,
            max_retries=settings.db_retry_max_retries,
            base_delay=settings.db_retry_base_delay_seconds,
            max_delay=settings.db_retry_max_delay_seconds,
        )
        if not connected:
            logger.critical("Database connection failed. Refusing to start.")
            raise RuntimeError("Database connection failed")
        logger.info("Database connection established")
    else:
        logger.warning("No database configured; health checks will report degraded")

    yield

    dispose = getattr(pool, "dispose", None)
    if dispose is not None:
        dispose()


def create_app(pool: Optional[ConnectionPool] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Registers routers, error handlers, and security middleware.
    This is the composition root of the application.

    Args:
        pool: Connection pool to use. Built from settings when omitted.

    Returns:
        A fully configured FastAPI application instance.
    """
    configure_logging(level=settings.log_level)

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.pool = pool if pool is not None else build_pool()

    # --- Rate Limiting ---
    app.state.limiter = limiter

    # --- Error Handlers ---
    # Registers the error-routing middleware, which must sit innermost.
    register_error_handlers(app)

    # --- Logging & Security Middleware ---
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    # --- Routers ---
    app.include_router(health_router, prefix=API_PREFIX)

    return app


app = create_app()
