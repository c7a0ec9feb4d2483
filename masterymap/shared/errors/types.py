"""
Error taxonomy for the MasteryMap server.

Every failure that crosses a module boundary is classified into one
of a closed set of kinds, each with a machine code and HTTP status.
No framework imports allowed; the HTTP layer renders these errors.
"""

import re
import secrets
import string
import time
import traceback
from datetime import datetime, timezone
from typing import Any

HTTP_400 = 400
HTTP_401 = 401
HTTP_403 = 403
HTTP_404 = 404
HTTP_405 = 405
HTTP_409 = 409
HTTP_429 = 429
HTTP_500 = 500
HTTP_503 = 503

STATUS_CODES: dict[int, str] = {
    HTTP_400: "VALIDATION_ERROR",
    HTTP_401: "UNAUTHORIZED",
    HTTP_403: "FORBIDDEN",
    HTTP_404: "NOT_FOUND",
    HTTP_409: "CONFLICT",
    HTTP_429: "RATE_LIMITED",
    HTTP_500: "INTERNAL_ERROR",
}
UNKNOWN_CODE = "UNKNOWN_ERROR"

# SQLSTATE values (PostgreSQL appendix A)
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
CONNECTION_EXCEPTION_CLASS = "08"
SHUTDOWN_CODES = frozenset({"57P01", "57P02", "57P03"})

_ID_ALPHABET = string.digits + string.ascii_lowercase

# SQLSTATE (5 chars) or errno-style names; SQLAlchemy doc codes are lowercase.
_DRIVER_CODE = re.compile(r"^(?:[0-9A-Z]{5}|E[A-Z]+)$")


def generate_error_id() -> str:
    """Return a correlation id of the form ``err_<epoch-ms>_<suffix>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"err_{int(time.time() * 1000)}_{suffix}"


def code_for_status(status_code: int) -> str:
    """Map an HTTP status to its default machine code."""
    return STATUS_CODES.get(status_code, UNKNOWN_CODE)


class AppError(Exception):
    """Base class for every classified failure.

    Attributes:
        message: Human-readable message, safe to show to clients.
        status_code: HTTP status the error renders with.
        code: Machine-readable error code.
        context: Optional ``operation:field`` style context string.
        error_id: Correlation id for matching logs to responses.
        is_operational: True for anticipated failures (bad input,
            missing rows), False for unexpected bugs.
    """

    def __init__(
        self,
        message: str,
        status_code: int = HTTP_500,
        code: str | None = None,
        context: str | None = None,
        is_operational: bool = True,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.code = code or code_for_status(status_code)
        self.context = context
        self.error_id = generate_error_id()
        self.is_operational = is_operational
        super().__init__(self.message)

    def _details(self) -> dict[str, Any]:
        return {
            "stack": "".join(
                traceback.format_exception(type(self), self, self.__traceback__)
            ),
            "statusCode": self.status_code,
        }

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        """Serialize to the HTTP error body.

        Args:
            include_details: Attach stack and status details. Only the
                development-mode flag should turn this on.

        Returns:
            A JSON-serializable dict; optional keys are omitted when empty.
        """
        body: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "errorId": self.error_id,
        }
        if self.context:
            body["context"] = self.context
        if include_details:
            body["details"] = self._details()
        return body


class ValidationError(AppError):
    """Raised for invalid input."""

    def __init__(
        self, message: str, field: str | None = None, context: str | None = None
    ) -> None:
        if field:
            context = f"{context or 'validation'}.{field}"
        super().__init__(message, HTTP_400, "VALIDATION_ERROR", context)
        self.field = field


class AuthenticationError(AppError):
    """Raised when a request carries no valid credentials."""

    def __init__(
        self, message: str = "Authentication required", context: str | None = None
    ) -> None:
        super().__init__(message, HTTP_401, "UNAUTHORIZED", context)


class AuthorizationError(AppError):
    """Raised when an authenticated user may not perform an action."""

    def __init__(
        self, message: str = "Access denied", context: str | None = None
    ) -> None:
        super().__init__(message, HTTP_403, "FORBIDDEN", context)


class NotFoundError(AppError):
    """Raised when a resource does not exist."""

    def __init__(
        self,
        resource: str,
        id: str | int | None = None,
        context: str | None = None,
    ) -> None:
        if id is not None:
            message = f"{resource} with id {id} not found"
        else:
            message = f"{resource} not found"
        super().__init__(message, HTTP_404, "NOT_FOUND", context)
        self.resource = resource
        self.id = id


class ConflictError(AppError):
    """Raised when a write collides with existing state."""

    def __init__(self, message: str, context: str | None = None) -> None:
        super().__init__(message, HTTP_409, "CONFLICT", context)


class RateLimitError(AppError):
    """Raised when a client exceeds its request budget."""

    def __init__(
        self, message: str = "Rate limit exceeded", context: str | None = None
    ) -> None:
        super().__init__(message, HTTP_429, "RATE_LIMITED", context)


class DatabaseError(AppError):
    """Raised for database failures that fit no narrower kind."""

    def __init__(
        self,
        message: str,
        original: BaseException | None = None,
        context: str | None = None,
    ) -> None:
        super().__init__(message, HTTP_500, "DATABASE_ERROR", context)
        self.original = original

    def _details(self) -> dict[str, Any]:
        details = super()._details()
        if self.original is not None:
            details["cause"] = repr(self.original)
        return details


class BatchOperationError(DatabaseError):
    """Raised when one statement of a batch fails.

    ``step`` is 1-indexed.
    """

    def __init__(
        self,
        step: int,
        total: int,
        original: BaseException | None = None,
        context: str | None = None,
    ) -> None:
        super().__init__(
            f"Batch operation failed at step {step}/{total}", original, context
        )
        self.step = step
        self.total = total


class AIServiceError(AppError):
    """Raised when the AI provider call fails."""

    def __init__(
        self,
        message: str,
        ai_provider: str = "OpenAI",
        original: BaseException | None = None,
        context: str | None = None,
    ) -> None:
        super().__init__(message, HTTP_500, "AI_SERVICE_ERROR", context)
        self.ai_provider = ai_provider
        self.original = original

    def _details(self) -> dict[str, Any]:
        details = super()._details()
        if self.original is not None:
            details["originalError"] = str(self.original)
        return details

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        body = super().to_dict(include_details)
        body["aiProvider"] = self.ai_provider
        return body


class NetworkError(AppError):
    """Raised when a downstream service cannot be reached."""

    def __init__(self, message: str, context: str | None = None) -> None:
        super().__init__(message, HTTP_503, "NETWORK_ERROR", context)


def is_app_error(exc: object) -> bool:
    return isinstance(exc, AppError)


def is_operational_error(exc: object) -> bool:
    """Return True only for operational taxonomy errors."""
    return isinstance(exc, AppError) and exc.is_operational


def create_error_context(
    operation: str, user_id: int | str | None = None, **extra: Any
) -> str:
    """Build a ``key:value|key:value`` context string.

    Example:
        >>> create_error_context("project.create", user_id=7, school=3)
        'operation:project.create|userId:7|school:3'
    """
    parts = {"operation": operation, "userId": user_id, **extra}
    return "|".join(f"{key}:{value}" for key, value in parts.items() if value is not None)


def get_error_code(exc: BaseException) -> str | None:
    """Return the driver error code carried by an exception, if any.

    Looks at the exception itself, the DBAPI error wrapped by SQLAlchemy
    (``orig``) and the chained cause. psycopg exposes ``sqlstate``,
    psycopg2 ``pgcode``, pg8000 and OS-level errors ``code``.
    """
    candidates = [exc, getattr(exc, "orig", None), exc.__cause__]
    for candidate in candidates:
        if candidate is None:
            continue
        for attribute in ("sqlstate", "pgcode", "code"):
            value = getattr(candidate, attribute, None)
            if isinstance(value, str) and _DRIVER_CODE.match(value):
                return value
    return None


def is_connection_code(code: str | None) -> bool:
    if not code:
        return False
    return code.startswith(CONNECTION_EXCEPTION_CLASS) or code in SHUTDOWN_CODES


def parse_database_error(exc: BaseException, context: str | None = None) -> AppError:
    """Classify a database driver failure into the taxonomy.

    The driver's SQLSTATE decides when it maps to a kind; the message
    text is only consulted when the code does not.

    Args:
        exc: The raised driver (or SQLAlchemy) exception.
        context: Context string attached to the result.

    Returns:
        A conflict, validation, network or generic database error.
        Taxonomy errors are returned unchanged.
    """
    if isinstance(exc, AppError):
        return exc

    code = get_error_code(exc)
    if code == UNIQUE_VIOLATION:
        return ConflictError("Resource already exists", context)
    if code == FOREIGN_KEY_VIOLATION:
        return ValidationError("Referenced resource not found", context=context)
    if is_connection_code(code):
        return NetworkError("Database connection failed", context)

    message = str(exc) or "Database operation failed"
    if "duplicate key" in message:
        return ConflictError("Resource already exists", context)
    if "foreign key constraint" in message:
        return ValidationError("Referenced resource not found", context=context)
    if "connection" in message:
        return NetworkError("Database connection failed", context)

    return DatabaseError(message, exc, context)


def _provider_status(exc: BaseException) -> int | None:
    for attribute in ("status_code", "status"):
        value = getattr(exc, attribute, None)
        if isinstance(value, int):
            return value
    return None


def parse_ai_service_error(
    exc: BaseException, context: str | None = None, ai_provider: str = "OpenAI"
) -> AIServiceError:
    """Classify an AI provider failure by its HTTP status."""
    status = _provider_status(exc)
    if status == HTTP_401:
        message = "AI service authentication failed"
    elif status == HTTP_429:
        message = "AI service rate limit exceeded"
    elif status == HTTP_503:
        message = "AI service temporarily unavailable"
    else:
        message = str(exc) or "AI service request failed"
    return AIServiceError(message, ai_provider, exc, context)
