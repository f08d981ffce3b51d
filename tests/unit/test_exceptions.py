"""Unit tests for the exception hierarchy"""
import httpx
import psycopg

from wellness.exceptions import (
    AchievementServiceError,
    ConcurrentModificationError,
    ConnectionError,
    DuplicateAchievementError,
    ExternalAPIError,
    InvalidTransitionError,
    QueryError,
    RecordNotFoundError,
    ValidationError,
    WellnessError,
    wrap_external_exception,
)


class TestWellnessError:
    """Base error behaviour"""

    def test_context_and_ids(self):
        """Test request id, timestamp and context are populated"""
        error = WellnessError("Failed to save", user_id="user-1", operation="save", context={"k": "v"})
        assert error.request_id
        assert error.timestamp.tzinfo is not None
        assert error.context == {"k": "v"}

    def test_to_dict(self):
        """Test serialization for API responses"""
        data = ValidationError("Too long", field="notes").to_dict()
        assert data["error"] == "ValidationError"
        assert data["message"] == "Too long"
        assert data["user_message"] == "Invalid notes: Too long"


class TestDomainErrors:
    """Subclass fields and messages"""

    def test_invalid_transition(self):
        """Test message names the action and status"""
        error = InvalidTransitionError("abandoned", "complete", context={"session_id": "s-1"})
        assert str(error) == "Cannot complete session in abandoned status"
        assert error.context["session_id"] == "s-1"
        assert error.context["action"] == "complete"
        assert "completed" in error.user_message

    def test_duplicate_achievement_is_validation(self):
        """Test duplicate achievements are validation failures"""
        error = DuplicateAchievementError("zen_master", user_id="user-1")
        assert isinstance(error, ValidationError)
        assert error.value == "zen_master"

    def test_concurrent_modification(self):
        """Test version details are kept"""
        error = ConcurrentModificationError("conflict", record_type="session", record_id="s-1", expected_version=3)
        assert error.expected_version == 3
        assert error.context["record_id"] == "s-1"

    def test_achievement_service_error(self):
        """Test achievement errors are external API errors"""
        error = AchievementServiceError("down", session_id="s-1", status_code=503)
        assert isinstance(error, ExternalAPIError)
        assert error.status_code == 503
        assert error.service == "Achievement Service"

    def test_record_not_found_message(self):
        """Test user message names the record type"""
        assert RecordNotFoundError("missing", record_type="Session").user_message == "Session not found."


class TestWrapExternalException:
    """Mapping of library errors"""

    def test_operational_error(self):
        """Test connection failures become ConnectionError"""
        wrapped = wrap_external_exception(psycopg.OperationalError("gone"), operation="update_session")
        assert isinstance(wrapped, ConnectionError)
        assert wrapped.operation == "update_session"

    def test_query_error(self):
        """Test other psycopg errors become QueryError"""
        wrapped = wrap_external_exception(psycopg.DataError("bad"), operation="insert_session")
        assert isinstance(wrapped, QueryError)

    def test_http_status(self):
        """Test HTTP status errors keep the status code"""
        request = httpx.Request("POST", "https://achievements.test")
        response = httpx.Response(502, request=request)
        wrapped = wrap_external_exception(
            httpx.HTTPStatusError("bad gateway", request=request, response=response),
            operation="process_achievements",
        )
        assert isinstance(wrapped, ExternalAPIError)
        assert wrapped.status_code == 502

    def test_fallback(self):
        """Test unknown errors become WellnessError with the cause"""
        cause = KeyError("x")
        wrapped = wrap_external_exception(cause, operation="load")
        assert type(wrapped) is WellnessError
        assert wrapped.cause is cause
