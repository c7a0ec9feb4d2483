"""
Rate limiting configuration.

Uses slowapi to enforce per-client limits. Routes opt in with
``limiter.limit``: general API routes use ``API_RATE_LIMIT``, AI-backed
and auth routes the stricter limits.
Breaches are rendered as ``RATE_LIMITED`` taxonomy errors by the
shared error handlers.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from masterymap.core.config import settings

API_RATE_LIMIT = settings.rate_limit_api
AI_RATE_LIMIT = settings.rate_limit_ai
AUTH_RATE_LIMIT = settings.rate_limit_auth

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[API_RATE_LIMIT],
    enabled=settings.rate_limit_enabled,
)
