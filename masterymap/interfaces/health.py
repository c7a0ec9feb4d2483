"""
Health check router.

Provides the liveness/readiness endpoint. Reports the application
version and whether the database answers a trivial query.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from masterymap.core.config import settings
from masterymap.infrastructure.database.pool import ConnectionPool
from masterymap.infrastructure.database.transaction import check_database_health
from masterymap.interfaces.dependencies import get_pool
from masterymap.interfaces.schemas import ErrorResponse, HealthResponse
from masterymap.shared.security.rate_limiting import API_RATE_LIMIT, limiter

HTTP_503 = 503

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={429: {"model": ErrorResponse}, 503: {"model": HealthResponse}},
    summary="Health check",
    description="Returns application health status, version and database reachability.",
)
@limiter.limit(API_RATE_LIMIT)
def health_check(
    request: Request,
    response: Response,
    pool: Optional[ConnectionPool] = Depends(get_pool),
) -> HealthResponse:
    """Return current application health status."""
    database = pool is not None and check_database_health(
        pool,
        max_retries=settings.health_check_max_retries,
        base_delay=settings.health_check_base_delay_seconds,
    )
    if not database:
        response.status_code = HTTP_503
    return HealthResponse(
        status="ok" if database else "degraded",
        version=settings.version,
        database=database,
    )
