"""
Consolidated exception system with error codes, context, and correlation support.

This module provides a unified exception hierarchy for connection definitions,
credential storage and credential resolution, with automatic logging and
correlation ID tracking. Calling layers branch on the exception class or on
``error_code``; ``retryable`` tells the execution engine whether a retry with
backoff may succeed.
"""

import threading
import traceback
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from .enums import AuthErrorReason

_thread_local = threading.local()


class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""

    # System errors (1xxx)
    INTERNAL_ERROR = "1000"
    DATABASE_ERROR = "1001"
    CONNECTION_ERROR = "1002"
    CONFIGURATION_ERROR = "1003"
    TIMEOUT_ERROR = "1004"

    # Validation errors (2xxx)
    VALIDATION_FAILED = "2000"
    INVALID_FORMAT = "2001"
    MISSING_REQUIRED = "2002"

    # Resource errors (3xxx)
    NOT_FOUND = "3000"
    DUPLICATE = "3001"
    CONFLICT = "3002"
    LOCKED = "3003"
    EXPIRED = "3004"

    # Business logic errors (4xxx)
    INVALID_STATE_TRANSITION = "4001"
    PERMISSION_DENIED = "4003"
    PRECONDITION_FAILED = "4004"
    INVALID_CREDENTIAL = "4005"
    CREDENTIAL_UNUSABLE = "4006"

    # External service errors (5xxx)
    EXTERNAL_API_ERROR = "5002"
    INTEGRATION_ERROR = "5003"
    REFRESH_TRANSIENT = "5005"


class BaseError(Exception):
    """Base exception with context, error codes, logging, and error chaining."""

    retryable: bool = False
    user_message: str = "Unexpected error"

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context: Any,
    ):
        """
        Initialize base error with rich context.

        Args:
            message: Human-readable error message
            error_code: Standardized error code from ErrorCode enum
            status_code: HTTP status code for API responses
            cause: Original exception that caused this error
            **context: Additional context information (never secret values)
        """
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.error_id = str(uuid.uuid4())
        self.context = context

        correlation_id = get_correlation_id()
        if correlation_id:
            self.context["correlation_id"] = correlation_id

        self.context["error_id"] = self.error_id

        if cause:
            self.context["cause"] = {
                "type": type(cause).__name__,
                "message": str(cause),
                "traceback": traceback.format_exception(type(cause), cause, cause.__traceback__),
            }

        self._log_error()

        super().__init__(message)

    def _log_error(self) -> None:
        """Log error with appropriate level based on status code."""
        # Lazy import: the logger module depends on config, which must not import us back
        from .utils.logger import get_logger

        logger = get_logger()

        log_data = {
            "error_id": self.error_id,
            "error_code": self.error_code.value,
            "status_code": self.status_code,
            "error_message": self.message,
            "timestamp": self.timestamp,
            "context": {k: v for k, v in self.context.items() if k not in ["cause", "traceback"]},
        }

        if "correlation_id" in self.context:
            log_data["correlation_id"] = self.context["correlation_id"]

        if self.status_code >= 500:
            logger.error(
                f"Error {self.error_code.value}: {self.message}", extra=log_data, exc_info=self.cause
            )
        elif self.status_code >= 400:
            logger.warning(f"Client error {self.error_code.value}: {self.message}", extra=log_data)
        else:
            logger.info(f"Error {self.error_code.value}: {self.message}", extra=log_data)

    def to_dict(
        self, include_cause: bool = False, include_traceback: bool = False
    ) -> Dict[str, Any]:
        """
        Convert to dict for API responses.

        Args:
            include_cause: Include cause information (useful for debugging)
            include_traceback: Include full traceback (only in debug mode)

        Returns:
            Dictionary representation suitable for JSON serialization
        """
        result: Dict[str, Any] = {
            "error": {
                "id": self.error_id,
                "code": self.error_code.value,
                "kind": type(self).__name__,
                "message": self.message,
                "user_message": self.user_message,
                "retryable": self.retryable,
                "timestamp": self.timestamp,
                "context": {
                    k: v
                    for k, v in self.context.items()
                    if k not in ["cause", "error_id", "correlation_id"]
                },
            }
        }

        if "correlation_id" in self.context:
            result["error"]["correlation_id"] = self.context["correlation_id"]

        if include_cause and "cause" in self.context:
            result["error"]["cause"] = {
                "type": self.context["cause"]["type"],
                "message": self.context["cause"]["message"],
            }
            if include_traceback:
                result["error"]["cause"]["traceback"] = self.context["cause"]["traceback"]

        return result

    def add_context(self, **kwargs: Any) -> "BaseError":
        """
        Add additional context to the error (fluent interface).

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    @property
    def error_chain(self) -> List[Exception]:
        """Get the full chain of errors."""
        chain: List[Exception] = [self]
        current = self.cause
        while current:
            chain.append(current)
            current = getattr(current, "cause", None)
        return chain


# Layer-specific base exceptions
class RepositoryError(BaseError):
    """Credential store errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_ERROR,
        status_code: int = 500,
        cause: Optional[Exception] = None,
        **context,
    ):
        super().__init__(message, error_code, status_code, cause, **context)


class ServiceError(BaseError):
    """Service layer errors."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        operation: Optional[str] = None,
        cause: Optional[Exception] = None,
        **context,
    ):
        if operation:
            context["operation"] = operation
        super().__init__(message, error_code, 500, cause, **context)


class ValidationError(BaseError):
    """
    User input failed a connection schema.

    ``violations`` holds every failed field (not only the first one) so a
    setup form can surface all problems at once.
    """

    user_message = "Some fields are invalid"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        cause: Optional[Exception] = None,
        violations: Optional[Iterable[Any]] = None,
        **context,
    ):
        self.violations = list(violations or [])
        if field:
            context["field"] = field
        if self.violations:
            context["violations"] = [
                {"field": violation.field, "reason": violation.reason}
                for violation in self.violations
            ]
        super().__init__(message, error_code, 400, cause, **context)

    @property
    def fields(self) -> List[str]:
        return [violation.field for violation in self.violations]


class AuthError(BaseError):
    """
    A validate or refresh call against the third-party service failed.

    ``reason`` separates a rejected credential from transport trouble; a
    network failure never implies the credential is bad.
    """

    def __init__(
        self,
        message: str,
        reason: AuthErrorReason = AuthErrorReason.UNKNOWN,
        cause: Optional[Exception] = None,
        **context,
    ):
        self.reason = AuthErrorReason(reason)
        context["reason"] = self.reason.value
        if self.reason is AuthErrorReason.INVALID_CREDENTIAL:
            super().__init__(message, ErrorCode.INVALID_CREDENTIAL, 401, cause, **context)
        else:
            super().__init__(message, ErrorCode.EXTERNAL_API_ERROR, 502, cause, **context)

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.reason is not AuthErrorReason.INVALID_CREDENTIAL

    @property
    def user_message(self) -> str:  # type: ignore[override]
        if self.retryable:
            return "Temporary failure, will retry"
        return "Reconnect required"


class ConflictError(RepositoryError):
    """Optimistic-concurrency conflict on a credential instance; reload and retry."""

    retryable = True
    user_message = "Temporary failure, will retry"

    def __init__(self, message: str = "Credential instance was modified concurrently", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.CONFLICT, status_code=409, **kwargs)


# ==================== CREDENTIAL-SPECIFIC EXCEPTIONS ====================


class CredentialNotFoundError(BaseError):
    """Raised when a requested credential instance is not found."""

    user_message = "Connection not found"

    def __init__(self, message: str = "Credential not found", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.NOT_FOUND, status_code=404, **kwargs)


class CredentialUnusableError(BaseError):
    """Terminal: the instance is revoked, invalid or expired beyond refresh."""

    user_message = "Reconnect required"

    def __init__(self, message: str = "Credential is unusable", reason: str = "unusable", **kwargs):
        self.reason = reason
        super().__init__(
            message=message,
            error_code=ErrorCode.CREDENTIAL_UNUSABLE,
            status_code=409,
            reason=reason,
            **kwargs,
        )


class RefreshTransientError(BaseError):
    """Refresh failed for a transient reason; the whole resolution may be retried."""

    retryable = True
    user_message = "Temporary failure, will retry"

    def __init__(self, message: str = "Credential refresh failed transiently", reason: str = "network", **kwargs):
        self.reason = reason
        super().__init__(
            message=message,
            error_code=ErrorCode.REFRESH_TRANSIENT,
            status_code=503,
            reason=reason,
            **kwargs,
        )


class TenantIsolationError(BaseError):
    """A store call named a different tenant than the active tenant context."""

    user_message = "Connection not found"

    def __init__(self, message: str = "Cross-tenant credential access refused", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.PERMISSION_DENIED, status_code=403, **kwargs
        )


# ==================== REGISTRY EXCEPTIONS ====================


class DuplicateIdError(BaseError):
    """A different connection definition is already registered under this id."""

    def __init__(self, message: str = "Connection definition id already registered", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.DUPLICATE, status_code=409, **kwargs)


class ConnectionDefinitionNotFoundError(BaseError):
    """No connection definition is registered under the requested id."""

    user_message = "Unknown connection type"

    def __init__(self, message: str = "Connection definition not found", **kwargs):
        super().__init__(message=message, error_code=ErrorCode.NOT_FOUND, status_code=404, **kwargs)


class RegistryFrozenError(BaseError):
    """Registration attempted after the registry was frozen."""

    def __init__(self, message: str = "Connection registry is read-only", **kwargs):
        super().__init__(
            message=message, error_code=ErrorCode.PRECONDITION_FAILED, status_code=409, **kwargs
        )


# Factory functions for common error patterns
def not_found(
    resource_type: str, cause: Optional[Exception] = None, **identifiers
) -> RepositoryError:
    """
    Factory for not found errors.

    Args:
        resource_type: Type of resource (e.g., 'CredentialInstance')
        cause: Original exception if any
        **identifiers: Resource identifiers (e.g., instance_id='123')

    Returns:
        Configured RepositoryError instance with 404 status
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"{resource_type} not found"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return RepositoryError(
        message,
        error_code=ErrorCode.NOT_FOUND,
        status_code=404,
        cause=cause,
        resource_type=resource_type,
        **identifiers,
    )


def duplicate(
    resource_type: str, cause: Optional[Exception] = None, **identifiers
) -> ConflictError:
    """
    Factory for creates that hit an existing record.

    Args:
        resource_type: Type of resource
        cause: Original exception if any
        **identifiers: Resource identifiers

    Returns:
        Configured ConflictError instance
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"{resource_type} already exists"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return ConflictError(message, cause=cause, resource_type=resource_type, **identifiers)


def conflict(
    resource_type: str,
    expected_version: int,
    actual_version: Optional[int],
    cause: Optional[Exception] = None,
    **identifiers,
) -> ConflictError:
    """
    Factory for optimistic-concurrency conflicts.

    Args:
        resource_type: Type of resource
        expected_version: Version the writer based its change on
        actual_version: Version currently stored (None when the record is gone)
        cause: Original exception if any
        **identifiers: Resource identifiers

    Returns:
        Configured ConflictError instance
    """
    id_parts = [f"{k}={v}" for k, v in identifiers.items()]
    message = f"Concurrent modification of {resource_type}"
    if id_parts:
        message += f": {', '.join(id_parts)}"

    return ConflictError(
        message,
        cause=cause,
        resource_type=resource_type,
        expected_version=expected_version,
        actual_version=actual_version,
        **identifiers,
    )


# Correlation ID management
def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current thread."""
    _thread_local.correlation_id = correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current thread's correlation ID."""
    return getattr(_thread_local, "correlation_id", None)


def clear_correlation_id() -> None:
    """Clear the current thread's correlation ID."""
    if hasattr(_thread_local, "correlation_id"):
        delattr(_thread_local, "correlation_id")
