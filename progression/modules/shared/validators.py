"""
Progression Domain Validators

Purpose
-------
Domain validation utilities for enforcing business rules on caller input.
Validators raise structured domain exceptions when validation fails.

Design Notes
------------
Validators:
- Accept data to validate as parameters
- Raise specific domain exceptions on failure
- Return None on success (raise-on-error pattern), except the pagination
  helper which returns the clamped values
- Never touch the database

Usage
-----
    from progression.modules.shared.validators import validate_balance

    validate_balance(required=500, available=120)
    # Raises: InsufficientBalanceError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Tuple

from progression.modules.shared.exceptions import (
    InsufficientBalanceError,
    ValidationError,
)

if TYPE_CHECKING:
    from datetime import datetime


def validate_points_amount(points: int, field: str = "points") -> None:
    """
    Validate a ledger amount: a strictly positive int.

    Raises:
        ValidationError: If points is not a positive integer
    """
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise ValidationError(field, f"{field} must be a positive integer, got {points!r}")


def validate_balance(required: int, available: int) -> None:
    """
    Validate that a user can afford a debit.

    Raises:
        InsufficientBalanceError: If available < required
    """
    if available < required:
        raise InsufficientBalanceError(required, available)


def validate_pagination(
    limit: int, offset: int = 0, max_limit: int = 100
) -> Tuple[int, int]:
    """
    Validate paging arguments and clamp `limit` to `max_limit`.

    Raises:
        ValidationError: If limit < 1 or offset < 0

    Returns:
        (limit, offset)
    """
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit", f"limit must be a positive integer, got {limit!r}")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValidationError(
            "offset", f"offset must be a non-negative integer, got {offset!r}"
        )
    return min(limit, max_limit), offset


def validate_text(
    value: Optional[str],
    field: str,
    *,
    required: bool = True,
    max_length: int = 255,
) -> None:
    """
    Validate a free-text field.

    Raises:
        ValidationError: If a required value is blank or any value is too long
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(field, f"{field} is required")
        return
    if not isinstance(value, str):
        raise ValidationError(field, f"{field} must be a string")
    if len(value) > max_length:
        raise ValidationError(
            field, f"{field} must be at most {max_length} characters, got {len(value)}"
        )


def validate_date_window(
    start_date: Optional[datetime], end_date: Optional[datetime]
) -> None:
    """
    Validate an optional [start, end] window.

    Raises:
        ValidationError: If both are set and end is not after start
    """
    if start_date is not None and end_date is not None and end_date <= start_date:
        raise ValidationError("end_date", "end_date must be after start_date")
