"""
Shared error handling package.

Defines the error taxonomy and centralizes error-to-HTTP mapping so
that every failure is logged and rendered the same way.
"""

from masterymap.shared.errors.types import (
    AIServiceError,
    AppError,
    AuthenticationError,
    AuthorizationError,
    BatchOperationError,
    ConflictError,
    DatabaseError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ValidationError,
    create_error_context,
    is_app_error,
    is_operational_error,
    parse_ai_service_error,
    parse_database_error,
)

__all__ = [
    "AIServiceError",
    "AppError",
    "AuthenticationError",
    "AuthorizationError",
    "BatchOperationError",
    "ConflictError",
    "DatabaseError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "ValidationError",
    "create_error_context",
    "is_app_error",
    "is_operational_error",
    "parse_ai_service_error",
    "parse_database_error",
]
