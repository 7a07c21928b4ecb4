"""
Standardized exception hierarchy for the prayer engine
Provides rich context, consistent logging, and caller-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class PrayerEngineError(Exception):
    """
    Base exception for all prayer engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise PrayerEngineError(
            message="Failed to load prayer records",
            user_id="user-1",
            operation="fetch_events",
            context={"window_days": 30}
        )
    """

    log_level = logging.ERROR
    retryable = False

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
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (caller input)
# ==========================================

class ValidationError(PrayerEngineError):
    """
    Raised when input is malformed or out of range

    Examples:
    - Negative XP outside a correction
    - Level below 1
    - Progress update on a finished challenge

    Example:
        raise ValidationError(
            message="amount must be >= 0",
            field="amount",
            value=-5,
            user_id="user-1"
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
        kwargs.setdefault("user_message", f"Invalid {field}: {message}" if field else message)
        super().__init__(
            message=message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Lookup Errors
# ==========================================

class NotFoundError(PrayerEngineError):
    """Unknown badge, challenge or template id"""

    log_level = logging.WARNING

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
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


class ConflictError(PrayerEngineError):
    """
    Uniqueness constraint hit while inserting (duplicate-award race)

    Recoverable: callers treat it as "already done".
    """

    log_level = logging.DEBUG

    def __init__(self, message: str = "Record already exists", **kwargs):
        super().__init__(
            message=message,
            user_message="This was already recorded.",
            **kwargs
        )


# ==========================================
# Store Errors
# ==========================================

class StoreError(PrayerEngineError):
    """
    Record Store I/O failure

    Transient failures are marked retryable; callers should retry with backoff.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        **kwargs
    ):
        self.retryable = retryable
        kwargs.setdefault(
            "user_message",
            "We're having trouble reaching your records. Please try again in a moment."
            if retryable else
            "We couldn't save your progress. Please contact support if this continues."
        )
        super().__init__(message=message, **kwargs)


# ==========================================
# Computation Errors
# ==========================================

class ComputationError(PrayerEngineError):
    """
    Catalog or curve misconfiguration (e.g. non-contiguous rank ranges)

    Fatal, not retryable.
    """

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
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_store_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> PrayerEngineError:
    """
    Wrap driver exceptions (psycopg, pool timeouts) into our exception hierarchy

    Args:
        error: Original exception
        operation: What store operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate PrayerEngineError subclass

    Example:
        try:
            await cur.execute(query, params)
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="fetch_events", user_id="user-1")
    """
    if isinstance(error, PrayerEngineError):
        return error

    import psycopg
    from psycopg import errors as pg_errors
    from psycopg_pool import PoolTimeout

    if isinstance(error, pg_errors.UniqueViolation):
        return ConflictError(
            message=f"{operation} hit a uniqueness constraint: {error}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    if isinstance(error, (psycopg.OperationalError, PoolTimeout, pg_errors.SerializationFailure,
                          pg_errors.DeadlockDetected)):
        return StoreError(
            message=f"{operation} failed (transient): {error}",
            retryable=True,
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    if isinstance(error, psycopg.Error):
        return StoreError(
            message=f"{operation} failed: {error}",
            retryable=False,
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    # Generic fallback
    return StoreError(
        message=f"{operation} failed: {error}",
        retryable=False,
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
