"""
Tests for the error taxonomy.

Covers status/code mapping, serialization, context helpers and the
database / AI provider error parsers. No IO required.
"""

import re

import pytest

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
    get_error_code,
    is_app_error,
    is_operational_error,
    parse_ai_service_error,
    parse_database_error,
)

ERROR_ID_PATTERN = re.compile(r"^err_\d+_[0-9a-z]{9}$")


class DriverError(Exception):
    """Stand-in for a DBAPI error carrying a SQLSTATE."""

    def __init__(self, message: str, pgcode: str | None = None) -> None:
        super().__init__(message)
        self.pgcode = pgcode


class WrappedDriverError(Exception):
    """Stand-in for SQLAlchemy's DBAPIError: own doc code, driver error on ``orig``."""

    code = "gkpj"

    def __init__(self, orig: BaseException) -> None:
        super().__init__(f"({type(orig).__name__}) {orig}")
        self.orig = orig


class ProviderError(Exception):
    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class TestAppError:
    """Tests for the base error class."""

    @pytest.mark.parametrize(
        "status, code",
        [
            (400, "VALIDATION_ERROR"),
            (401, "UNAUTHORIZED"),
            (403, "FORBIDDEN"),
            (404, "NOT_FOUND"),
            (409, "CONFLICT"),
            (429, "RATE_LIMITED"),
            (500, "INTERNAL_ERROR"),
            (418, "UNKNOWN_ERROR"),
        ],
    )
    def test_code_derived_from_status(self, status, code):
        assert AppError("x", status).code == code

    def test_explicit_code_wins(self):
        err = AppError("down", 503, "DATABASE_UNAVAILABLE")
        assert err.code == "DATABASE_UNAVAILABLE"
        assert err.status_code == 503

    def test_defaults(self):
        err = AppError("oops")
        assert err.status_code == 500
        assert err.is_operational is True
        assert err.context is None
        assert str(err) == "oops"

    def test_error_id_format_and_uniqueness(self):
        first, second = AppError("a"), AppError("a")
        assert ERROR_ID_PATTERN.match(first.error_id)
        assert first.error_id != second.error_id

    def test_to_dict_omits_details_by_default(self):
        body = NotFoundError("Project", 12, context="project.get").to_dict()
        assert body["code"] == "NOT_FOUND"
        assert body["message"] == "Project with id 12 not found"
        assert body["context"] == "project.get"
        assert body["errorId"].startswith("err_")
        assert body["timestamp"].endswith("+00:00")
        assert "details" not in body

    def test_to_dict_omits_empty_context(self):
        assert "context" not in AppError("x").to_dict()

    def test_to_dict_includes_details_when_asked(self):
        try:
            raise ConflictError("taken")
        except ConflictError as exc:
            body = exc.to_dict(include_details=True)
        assert body["details"]["statusCode"] == 409
        assert "ConflictError" in body["details"]["stack"]


class TestSubclasses:
    """Tests for the kind-specific subclasses."""

    def test_validation_error_field_context(self):
        assert ValidationError("bad", field="title").context == "validation.title"
        assert (
            ValidationError("bad", field="title", context="project").context
            == "project.title"
        )
        assert ValidationError("bad", context="project").context == "project"

    def test_auth_defaults(self):
        assert AuthenticationError().message == "Authentication required"
        assert AuthenticationError().status_code == 401
        assert AuthorizationError().message == "Access denied"
        assert AuthorizationError().status_code == 403

    def test_not_found_without_id(self):
        assert NotFoundError("Milestone").message == "Milestone not found"

    def test_rate_limit_default(self):
        err = RateLimitError()
        assert (err.status_code, err.code) == (429, "RATE_LIMITED")

    def test_network_error(self):
        assert (NetworkError("x").status_code, NetworkError("x").code) == (
            503,
            "NETWORK_ERROR",
        )

    def test_database_error_keeps_original(self):
        cause = RuntimeError("disk full")
        err = DatabaseError("write failed", cause)
        assert err.original is cause
        assert err.code == "DATABASE_ERROR"
        assert "disk full" in err.to_dict(include_details=True)["details"]["cause"]

    def test_batch_error_reports_step(self):
        err = BatchOperationError(2, 5, context="batch.step2")
        assert err.message == "Batch operation failed at step 2/5"
        assert (err.step, err.total) == (2, 5)
        assert isinstance(err, DatabaseError)

    def test_ai_service_error_body(self):
        err = AIServiceError("quota", "OpenAI", RuntimeError("429 from upstream"))
        body = err.to_dict()
        assert body["aiProvider"] == "OpenAI"
        assert body["code"] == "AI_SERVICE_ERROR"
        assert "details" not in body
        details = err.to_dict(include_details=True)["details"]
        assert details["originalError"] == "429 from upstream"


class TestHelpers:
    """Tests for detection and context helpers."""

    def test_is_app_error(self):
        assert is_app_error(ConflictError("x"))
        assert not is_app_error(ValueError("x"))

    def test_is_operational_error(self):
        assert is_operational_error(NotFoundError("Project"))
        assert not is_operational_error(AppError("bug", is_operational=False))
        assert not is_operational_error(RuntimeError("bug"))

    def test_create_error_context(self):
        assert (
            create_error_context("project.create", user_id=7, school=3)
            == "operation:project.create|userId:7|school:3"
        )
        assert create_error_context("grade", team=None) == "operation:grade"

    def test_get_error_code_prefers_driver_code(self):
        wrapped = WrappedDriverError(DriverError("boom", pgcode="23505"))
        assert get_error_code(wrapped) == "23505"

    def test_get_error_code_from_cause(self):
        try:
            try:
                raise DriverError("down", pgcode="08006")
            except DriverError as inner:
                raise RuntimeError("wrapped") from inner
        except RuntimeError as outer:
            assert get_error_code(outer) == "08006"

    def test_get_error_code_none(self):
        assert get_error_code(ValueError("plain")) is None


class TestParseDatabaseError:
    """Tests for driver error classification."""

    @pytest.mark.parametrize(
        "message",
        [
            'duplicate key value violates unique constraint "users_username_key"',
            "ERROR: duplicate key in index",
        ],
    )
    def test_duplicate_key_message_is_conflict(self, message):
        err = parse_database_error(Exception(message), "user.create")
        assert isinstance(err, ConflictError)
        assert err.status_code == 409
        assert err.message == "Resource already exists"
        assert err.context == "user.create"

    def test_foreign_key_message_is_validation(self):
        err = parse_database_error(
            Exception('insert violates foreign key constraint "fk_project"')
        )
        assert isinstance(err, ValidationError)
        assert err.status_code == 400
        assert err.message == "Referenced resource not found"

    def test_connection_message_is_network(self):
        err = parse_database_error(Exception("connection reset by peer"))
        assert isinstance(err, NetworkError)
        assert err.status_code == 503

    def test_sqlstate_decides_regardless_of_message(self):
        assert isinstance(
            parse_database_error(DriverError("could not insert", "23505")),
            ConflictError,
        )
        assert isinstance(
            parse_database_error(DriverError("insert failed", "23503")),
            ValidationError,
        )
        assert isinstance(
            parse_database_error(DriverError("server closed", "57P01")), NetworkError
        )
        assert isinstance(
            parse_database_error(DriverError("bad", "08001")), NetworkError
        )

    def test_sqlstate_through_wrapper(self):
        err = parse_database_error(
            WrappedDriverError(DriverError("unique_violation", "23505"))
        )
        assert isinstance(err, ConflictError)

    def test_unknown_is_database_error(self):
        cause = DriverError('relation "projects" does not exist', "42P01")
        err = parse_database_error(cause, "project.list")
        assert type(err) is DatabaseError
        assert err.message == 'relation "projects" does not exist'
        assert err.original is cause

    def test_empty_message_gets_default(self):
        assert parse_database_error(Exception()).message == "Database operation failed"

    def test_app_error_passes_through(self):
        original = NotFoundError("Project", 1)
        assert parse_database_error(original) is original


class TestParseAIServiceError:
    """Tests for AI provider error classification."""

    @pytest.mark.parametrize(
        "status, message",
        [
            (401, "AI service authentication failed"),
            (429, "AI service rate limit exceeded"),
            (503, "AI service temporarily unavailable"),
        ],
    )
    def test_known_statuses(self, status, message):
        err = parse_ai_service_error(ProviderError("upstream", status), "feedback")
        assert err.message == message
        assert err.context == "feedback"
        assert err.ai_provider == "OpenAI"
        assert err.status_code == 500

    def test_other_status_keeps_message(self):
        err = parse_ai_service_error(ProviderError("model overloaded", 500))
        assert err.message == "model overloaded"

    def test_status_attribute_fallback(self):
        exc = Exception("nope")
        exc.status = 429
        assert parse_ai_service_error(exc).message == "AI service rate limit exceeded"

    def test_no_status(self):
        err = parse_ai_service_error(Exception(), ai_provider="Gemini")
        assert err.message == "AI service request failed"
        assert err.ai_provider == "Gemini"
