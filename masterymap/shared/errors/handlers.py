"""
Centralized error handling for FastAPI.

Every error that surfaces from request handling ends up in
``handle_error``, which classifies it, writes one structured log
entry and renders the uniform JSON error body.
No stack traces or internal details are exposed to clients outside
development mode.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from masterymap.core.config import settings
from masterymap.shared.errors.types import (
    HTTP_400,
    HTTP_401,
    HTTP_404,
    HTTP_405,
    HTTP_500,
    HTTP_503,
    AppError,
    RateLimitError,
    get_error_code,
    is_connection_code,
    is_operational_error,
)

logger = logging.getLogger(__name__)

VALIDATION_ERROR_NAMES = frozenset(
    {"ValidationError", "RequestValidationError", "ZodError"}
)
AUTH_ERROR_NAMES = frozenset(
    {
        "InvalidTokenError",
        "ExpiredSignatureError",
        "DecodeError",
        "JWTError",
        "JsonWebTokenError",
        "TokenExpiredError",
    }
)
CONNECTIVITY_MARKERS = ("econnrefused", "connection refused", "could not connect to server")

GENERIC_MESSAGE = "An unexpected error occurred"
ROUTING_DETAILS = frozenset({"Not Found", "Method Not Allowed"})


def _request_context(request: Request) -> str:
    return f"{request.method} {request.url.path}"


def _has_class_named(exc: BaseException, names: frozenset[str]) -> bool:
    return any(cls.__name__ in names for cls in type(exc).__mro__)


def _is_connectivity_error(exc: BaseException) -> bool:
    if is_connection_code(get_error_code(exc)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in CONNECTIVITY_MARKERS)


def classify_error(exc: BaseException, request: Request, development: bool) -> AppError:
    """Map any exception to a taxonomy error, in priority order.

    1. Taxonomy errors are returned as they are.
    2. Validation-library errors become 400 ``VALIDATION_ERROR``.
    3. Token errors become 401 ``UNAUTHORIZED``.
    4. Database connectivity failures become 503 ``DATABASE_UNAVAILABLE``.
    5. Anything else is a non-operational 500 ``INTERNAL_ERROR``.
    """
    if isinstance(exc, AppError):
        return exc

    context = _request_context(request)
    if _has_class_named(exc, VALIDATION_ERROR_NAMES):
        error = AppError("Request validation failed", HTTP_400, "VALIDATION_ERROR", context)
    elif _has_class_named(exc, AUTH_ERROR_NAMES):
        error = AppError("Authentication failed", HTTP_401, "UNAUTHORIZED", context)
    elif _is_connectivity_error(exc):
        error = AppError(
            "Database connection failed", HTTP_503, "DATABASE_UNAVAILABLE", context
        )
    else:
        if development:
            message = str(exc) or type(exc).__name__
        else:
            message = GENERIC_MESSAGE
        error = AppError(
            message, HTTP_500, "INTERNAL_ERROR", context, is_operational=False
        )
    # The details stack renders the chained original traceback.
    error.__cause__ = exc
    return error


def log_error(
    exc: BaseException,
    error: AppError,
    request: Request,
    log: logging.Logger | None = None,
) -> None:
    """Write one structured log entry for a failed request.

    ``exc`` is the error as raised, ``error`` its taxonomy classification.
    Non-operational errors are logged at critical with the traceback.
    """
    log = log or logger
    extra = {
        "error_id": error.error_id,
        "method": request.method,
        "path": request.url.path,
        "query": dict(request.query_params),
        "client": request.client.host if request.client else "unknown",
        "user_agent": request.headers.get("user-agent"),
        "error_type": type(exc).__name__,
        "is_operational": is_operational_error(error),
    }
    if is_operational_error(error):
        log.error("Request failed: %s", error.message, extra=extra)
    else:
        log.critical("Unexpected error: %s", exc, exc_info=exc, extra=extra)


def handle_error(
    request: Request,
    exc: BaseException,
    *,
    development: bool | None = None,
    log: logging.Logger | None = None,
) -> JSONResponse:
    """Convert any error into a logged, uniform JSON error response.

    Args:
        request: The request being handled.
        exc: The error that escaped request handling.
        development: Development-mode flag; defaults to the settings.
        log: Optional logger override.

    Returns:
        JSON response with the taxonomy error's status and body.
    """
    if development is None:
        development = settings.is_development

    error = classify_error(exc, request, development)
    log_error(exc, error, request, log)
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(include_details=development),
    )


def route_not_found(request: Request) -> AppError:
    context = _request_context(request)
    return AppError(f"Route {context} not found", HTTP_404, "NOT_FOUND", context)


class ErrorRoutingMiddleware(BaseHTTPMiddleware):
    """Routes exceptions escaping request handlers into ``handle_error``.

    Sync and async handlers alike end up here instead of in the
    server's default 500 page.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return handle_error(request, exc)


def register_error_handlers(app: FastAPI) -> None:
    """Register all error handlers on the FastAPI application.

    Args:
        app: The FastAPI application instance.
    """

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        """Render taxonomy errors raised by route handlers."""
        return handle_error(request, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request body/query validation failures."""
        return handle_error(request, exc)

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(
        request: Request, exc: RateLimitExceeded
    ) -> JSONResponse:
        """Handle slowapi limit breaches as RATE_LIMITED errors."""
        error = RateLimitError(context=_request_context(request))
        response = handle_error(request, error)
        limiter = getattr(request.app.state, "limiter", None)
        view_rate_limit = getattr(request.state, "view_rate_limit", None)
        if limiter is not None and view_rate_limit is not None:
            response = limiter._inject_headers(response, view_rate_limit)
        return response

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Catch-all for unmatched routes and explicit HTTPExceptions."""
        if exc.status_code in (HTTP_404, HTTP_405) and exc.detail in ROUTING_DETAILS:
            return handle_error(request, route_not_found(request))
        error = AppError(
            str(exc.detail), exc.status_code, context=_request_context(request)
        )
        response = handle_error(request, error)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    app.add_middleware(ErrorRoutingMiddleware)

