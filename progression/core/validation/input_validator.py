"""
Input Validation Layer

Purpose
-------
Provide a centralized validation layer for caller-supplied inputs entering
the progression engine. Enforces type safety, bounds checking and closed
enum membership so services never persist malformed values.

Responsibilities
----------------
- Validate and convert inputs to the correct types (int, str, enum, dict)
- Enforce bounds checking for numerical inputs (min/max validation)
- Validate user ids and entity ids
- Coerce strings to closed enum members (case-insensitive)
- Validate free-form metadata payloads
- Raise ValidationError with clear error messages

Non-Responsibilities
--------------------
- Business rule validation (service layer concern)
- Database constraints and persistence
- Authentication; the caller-supplied user id is trusted

Observability
-------------
Every validation failure is logged at debug level with:
- field_name
- raw_value (repr)
- reason/message
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Dict, Mapping, NoReturn, Optional, Type, TypeVar

from progression.core.logging.logger import get_logger
from progression.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)

MAX_USER_ID_LENGTH = 64
MAX_ENTITY_ID = 2**63 - 1


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """
    Centralized helper to log and raise a ValidationError.

    All validation failures go through this function to ensure consistent,
    structured logging and error construction.
    """
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Centralized input validation.

    All validation methods:
    - Are stateless and deterministic
    - Return validated values on success
    - Raise ValidationError on failure (never silently fail)
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        allow_zero: bool = True,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds checking.

        Args:
            value: Input value to validate (string, int, etc.)
            field_name: Name of field for error messages/logging
            min_value: Minimum allowed value (inclusive)
            max_value: Maximum allowed value (inclusive)
            allow_zero: Whether zero is acceptable

        Returns:
            Validated integer value

        Raises:
            ValidationError: If validation fails
        """
        if value is None or isinstance(value, bool):
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, float) and not value.is_integer():
            _raise_validation_error(
                field_name, value, f"Must be a whole number, got '{value}'"
            )

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(
                field_name,
                value,
                f"Must be a whole number, got '{value}'",
            )

        if not allow_zero and int_value == 0:
            _raise_validation_error(field_name, int_value, "Cannot be zero")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Must be at least {min_value}, got {int_value}",
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Cannot exceed {max_value}, got {int_value}",
            )

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a strictly positive integer (>= 1)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=1,
            max_value=max_value,
            allow_zero=False,
        )

    @staticmethod
    def validate_non_negative_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        """Validate that value is a non-negative integer (>= 0)."""
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=0,
            max_value=max_value,
            allow_zero=True,
        )

    # =========================================================================
    # ID VALIDATION
    # =========================================================================

    @staticmethod
    def validate_user_id(value: Any, field_name: str = "user_id") -> str:
        """
        Validate an externally issued user id.

        Ids are opaque strings; surrounding whitespace is stripped.

        Returns:
            Validated user id
        """
        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be a string")
        return InputValidator.validate_string(
            value,
            field_name=field_name,
            min_length=1,
            max_length=MAX_USER_ID_LENGTH,
        )

    @staticmethod
    def validate_entity_id(value: Any, field_name: str = "id") -> int:
        """Validate a database primary key as a positive integer."""
        return InputValidator.validate_positive_integer(
            value, field_name=field_name, max_value=MAX_ENTITY_ID
        )

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
        allowed_chars: Optional[str] = None,
    ) -> str:
        """
        Validate string input with optional length and character constraints.

        Args:
            value: String value to validate (any object, converted via str())
            field_name: Name of field for error messages
            min_length: Minimum string length
            max_length: Maximum string length
            allowed_chars: Regex character class for allowed characters
                           (e.g., 'a-zA-Z0-9 ')

        Returns:
            Validated, stripped string

        Raises:
            ValidationError: If validation fails
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        str_value = str(value).strip()

        if min_length is not None and len(str_value) < min_length:
            _raise_validation_error(
                field_name,
                str_value,
                f"Must be at least {min_length} characters",
            )

        if max_length is not None and len(str_value) > max_length:
            _raise_validation_error(
                field_name,
                str_value,
                f"Cannot exceed {max_length} characters",
            )

        if allowed_chars is not None:
            pattern = f"^[{allowed_chars}]+$"
            if not re.match(pattern, str_value):
                _raise_validation_error(
                    field_name,
                    str_value,
                    "Contains invalid characters",
                )

        return str_value

    @staticmethod
    def validate_optional_string(
        value: Any,
        field_name: str,
        max_length: Optional[int] = None,
    ) -> Optional[str]:
        """Like validate_string, but None and blank strings become None."""
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return InputValidator.validate_string(value, field_name, max_length=max_length)

    # =========================================================================
    # ENUM VALIDATION
    # =========================================================================

    @staticmethod
    def validate_enum(value: Any, enum_class: Type[E], field_name: str) -> E:
        """
        Coerce value to a member of a closed enum.

        Accepts a member, its value or its name, case-insensitively.

        Returns:
            The enum member

        Raises:
            ValidationError: If value names no member
        """
        if isinstance(value, enum_class):
            return value

        if isinstance(value, str):
            normalized = value.strip().upper()
            for member in enum_class:
                if member.name == normalized or str(member.value).upper() == normalized:
                    return member

        choices = ", ".join(member.name for member in enum_class)
        _raise_validation_error(
            field_name,
            value,
            f"Invalid choice '{value}'. Must be one of: {choices}",
        )

    # =========================================================================
    # METADATA VALIDATION
    # =========================================================================

    @staticmethod
    def validate_metadata(
        value: Optional[Mapping[str, Any]],
        field_name: str = "metadata",
        max_keys: int = 50,
    ) -> Optional[Dict[str, Any]]:
        """
        Validate a free-form metadata mapping stored as JSON.

        Returns:
            A shallow copy with string keys, or None
        """
        if value is None:
            return None
        if not isinstance(value, Mapping):
            _raise_validation_error(field_name, value, "Must be a mapping")
        if len(value) > max_keys:
            _raise_validation_error(
                field_name, value, f"Cannot contain more than {max_keys} keys"
            )
        for key in value:
            if not isinstance(key, str):
                _raise_validation_error(field_name, key, "Keys must be strings")
        return dict(value)
