"""
Domain exceptions for the progression engine.

Purpose
-------
Define the structured exception hierarchy raised by services for business
rule violations. All are synchronous, caller-visible failures; none are
retried automatically. Because every write runs inside
`DatabaseService.get_transaction()`, raising one of these leaves the store
exactly as it was before the call.

Taxonomy
--------
- `NotFoundError`: challenge, reward, redemption or account absent
- `ConflictError`: duplicate enrollment
- `InsufficientBalanceError`: spend/redeem/freeze exceeds available points
- `InvalidStateError`: inactive/expired/out-of-stock/limit-reached reward,
  progressing a non-ACTIVE enrollment, cancelling a non-PENDING redemption
- `UnauthorizedError`: acting on another user's redemption
- `ValidationError`: malformed caller input

Design Notes
------------
- All domain exceptions inherit from `ProgressionDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"  # Expected, not concerning
    INFO = "info"  # Normal operation (e.g., validation failures)
    WARNING = "warning"  # Concerning but handled
    ERROR = "error"  # Unexpected errors requiring attention
    CRITICAL = "critical"  # System-level failures


class ProgressionDomainException(Exception):
    """
    Base exception for all progression domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling

    Example:
        >>> raise ProgressionDomainException(
        ...     "Ledger unavailable",
        ...     {"user_id": "u-1"}
        ... )
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


def _code(value: str) -> str:
    return value.upper().replace(" ", "_").replace("-", "_")


class NotFoundError(ProgressionDomainException):
    """
    Raised when a requested entity does not exist.

    Args:
        resource_type: Type of resource (e.g., "Challenge", "Reward")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{_code(resource_type)}_NOT_FOUND",
        )


class ConflictError(ProgressionDomainException):
    """
    Raised when a create would violate a uniqueness rule.

    Args:
        resource_type: Type of resource (e.g., "Enrollment")
        identifier: Natural key that already exists
        reason: Explanation of the conflict
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Any, reason: str) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        self.reason = reason
        super().__init__(
            f"{resource_type} conflict: {reason}",
            details={
                "resource_type": resource_type,
                "identifier": identifier,
                "reason": reason,
            },
            error_code=f"{_code(resource_type)}_CONFLICT",
        )


class InsufficientBalanceError(ProgressionDomainException):
    """
    Raised when a debit exceeds the user's available points.

    Args:
        required: Points the operation needs
        current: Points currently available (0 when no account exists)
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, required: int, current: int) -> None:
        self.required = required
        self.current = current
        super().__init__(
            f"Insufficient points: need {required:,}, have {current:,}",
            details={
                "resource": "points",
                "required": required,
                "current": current,
                "deficit": required - current,
            },
            error_code="INSUFFICIENT_POINTS",
        )


class InvalidStateError(ProgressionDomainException):
    """
    Raised when an operation is not allowed in the entity's current state.

    Args:
        action: The attempted action (e.g., "redeem", "update_progress")
        reason: Explanation of why it's not allowed

    Example:
        >>> raise InvalidStateError("redeem", "Reward is out of stock")
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{_code(action)}",
        )


class UnauthorizedError(ProgressionDomainException):
    """
    Raised when a user acts on a resource they do not own.

    Args:
        action: The attempted action (e.g., "cancel_redemption")
        user_id: The caller that was refused
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, action: str, user_id: Any) -> None:
        self.action = action
        self.user_id = user_id
        super().__init__(
            f"User {user_id} is not allowed to {action.replace('_', ' ')}",
            details={"action": action, "user_id": user_id},
            error_code=f"UNAUTHORIZED_{_code(action)}",
        )


class ValidationError(ProgressionDomainException):
    """
    Raised when caller input fails domain validation.

    Args:
        field: Name of the field that failed validation
        message: Explanation of why validation failed
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{_code(field)}",
        )


# Utility functions for exception handling patterns


def is_transient_error(exc: Exception) -> bool:
    """
    Check if an exception represents a transient error that can be retried.

    Args:
        exc: Exception to check

    Returns:
        True if error is retryable, False otherwise.
    """
    if isinstance(exc, ProgressionDomainException):
        return exc.is_retryable
    return False


def get_error_severity(exc: Exception) -> ErrorSeverity:
    """Severity of an exception; unknown exceptions are ERROR."""
    if isinstance(exc, ProgressionDomainException):
        return exc.severity
    return ErrorSeverity.ERROR


def should_alert(exc: Exception) -> bool:
    """True if severity is ERROR or CRITICAL."""
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
