"""
Standardized exception hierarchy for the wellness core
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


def _merge_context(base: Dict[str, Any], kwargs: Dict[str, Any]) -> Dict[str, Any]:
    """Fold a caller-supplied ``context`` kwarg into the subclass context"""
    extra = kwargs.pop("context", None) or {}
    return {**base, **extra}


class WellnessError(Exception):
    """
    Base exception for all wellness core errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise WellnessError(
            message="Failed to save session",
            user_id="user-1",
            operation="complete_session",
            context={"session_id": "abc-123"}
        )
    """

    log_level = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.log_level,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause
            )
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (Caller Input)
# ==========================================

class ValidationError(WellnessError):
    """
    Raised when a field violates a range, length or enum constraint

    Always raised before any state is mutated.

    Example:
        raise ValidationError(
            message="Stress level must be between 1 and 10",
            field="stress_level_before",
            value=11
        )
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context=_merge_context({"field": field, "value": value}, kwargs),
            **kwargs
        )


class DuplicateAchievementError(ValidationError):
    """An achievement with the same id was already awarded"""

    def __init__(self, achievement_id: str, **kwargs):
        self.achievement_id = achievement_id
        super().__init__(
            message=f"Achievement '{achievement_id}' has already been awarded",
            field="achievements",
            value=achievement_id,
            **kwargs
        )


# ==========================================
# Session Lifecycle Errors
# ==========================================

class InvalidTransitionError(WellnessError):
    """
    Raised when an operation is attempted from a status that does not permit it

    Never retried automatically; the caller must re-read the session.
    """

    log_level = logging.WARNING

    def __init__(
        self,
        current_status: str,
        action: str,
        **kwargs
    ):
        self.current_status = current_status
        self.action = action
        super().__init__(
            message=f"Cannot {action} session in {current_status} status",
            user_message=f"This session is {current_status} and cannot be {_past_tense(action)}.",
            context=_merge_context({"current_status": current_status, "action": action}, kwargs),
            **kwargs
        )


def _past_tense(action: str) -> str:
    return {
        "pause": "paused",
        "resume": "resumed",
        "complete": "completed",
        "abandon": "abandoned",
        "interrupt": "interrupted",
    }.get(action, action)


class NotImplementedBySessionTypeError(WellnessError, NotImplementedError):
    """A session type did not supply a required strategy (programming error)"""

    def __init__(
        self,
        session_type: str,
        capability: str = "achievement processing",
        **kwargs
    ):
        self.session_type = session_type
        self.capability = capability
        super().__init__(
            message=f"{capability.capitalize()} must be implemented by session type '{session_type}'",
            context=_merge_context({"session_type": session_type, "capability": capability}, kwargs),
            **kwargs
        )


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(WellnessError):
    """
    Base class for database-related errors
    """
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the database. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your data. Please try again.",
            context=_merge_context({"query": query}, kwargs),
            **kwargs
        )


class RecordNotFoundError(DatabaseError):
    """Requested database record does not exist"""

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context=_merge_context({"record_type": record_type, "record_id": record_id}, kwargs),
            **kwargs
        )


class ConcurrentModificationError(DatabaseError):
    """
    The document changed between read and write

    Callers should re-read and re-validate instead of retrying blindly.
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        self.expected_version = expected_version
        super().__init__(
            message=message,
            user_message="This item was changed by another request. Please refresh and try again.",
            context=_merge_context({
                "record_type": record_type,
                "record_id": record_id,
                "expected_version": expected_version,
                }, kwargs),
            **kwargs
        )


# ==========================================
# External API Errors
# ==========================================

class ExternalAPIError(WellnessError):
    """
    Base class for external API failures
    """

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        user_message: Optional[str] = None,
        **kwargs
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(
            message=message,
            user_message=user_message or (
                f"We're having trouble connecting to {service or 'an external service'}. "
                "Please try again later."
            ),
            context=_merge_context({"service": service, "status_code": status_code}, kwargs),
            **kwargs
        )


class AchievementServiceError(ExternalAPIError):
    """
    Achievement decision service failed

    Non-fatal: the session transition that triggered the call stays committed.
    """

    def __init__(self, message: str, session_id: Optional[str] = None, **kwargs):
        self.session_id = session_id
        super().__init__(
            message=message,
            service="Achievement Service",
            user_message="Your session was saved, but rewards could not be credited yet.",
            **kwargs
        )


# ==========================================
# Authorization
# ==========================================

class AuthorizationError(WellnessError):
    """User lacks permission for requested operation"""

    def __init__(
        self,
        message: str = "Insufficient permissions",
        resource: Optional[str] = None,
        **kwargs
    ):
        self.resource = resource
        super().__init__(
            message=message,
            user_message=f"You don't have permission to access {resource or 'this resource'}.",
            context=_merge_context({"resource": resource}, kwargs),
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(WellnessError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context=_merge_context({"config_key": config_key}, kwargs),
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> WellnessError:
    """
    Wrap external exceptions (psycopg, httpx) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate WellnessError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="update_session")
    """
    import httpx
    import psycopg

    # Database errors
    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # HTTP errors
    elif isinstance(error, httpx.TimeoutException):
        return ExternalAPIError(
            message=f"API request timed out: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, httpx.HTTPStatusError):
        return ExternalAPIError(
            message=f"API returned error: {error.response.status_code}",
            status_code=error.response.status_code,
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Generic fallback
    else:
        return WellnessError(
            message=f"{operation} failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
