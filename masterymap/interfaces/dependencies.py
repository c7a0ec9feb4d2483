"""
Dependency injection for the API.

Provides FastAPI dependency functions that hand infrastructure
objects to routes. The pool itself is built once by the composition
root and kept on ``app.state``.
"""

from typing import Optional

from fastapi import Request

from masterymap.core.config import settings
from masterymap.infrastructure.database.pool import ConnectionPool, create_pool


def build_pool() -> Optional[ConnectionPool]:
    """Build the connection pool from settings, or None if unconfigured."""
    if not settings.has_database:
        return None
    return create_pool(
        settings.get_database_url(),
        pool_size=settings.db_pool_max,
        timeout=settings.db_pool_timeout_seconds,
        recycle=settings.db_pool_recycle_seconds,
    )


def get_pool(request: Request) -> Optional[ConnectionPool]:
    """Return the application's connection pool."""
    return getattr(request.app.state, "pool", None)
