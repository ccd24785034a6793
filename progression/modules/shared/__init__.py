"""
Progression Shared Module

Purpose
-------
Provides domain-level foundations for every progression module:
- Domain exceptions and error handling
- Base service and repository patterns
- Economy constants and pure formulas
- Domain validation utilities
- The `Unlimited | Bounded(n)` quantity type

Usage
-----
    from progression.modules.shared import (
        BaseService,
        BaseRepository,
        InsufficientBalanceError,
        validate_points_amount,
    )
"""

from __future__ import annotations

# Base patterns
from .base_repository import BaseRepository
from .base_service import BaseService

# Domain exceptions
from .exceptions import (
    ConflictError,
    ErrorSeverity,
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    ProgressionDomainException,
    UnauthorizedError,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

# Quantity type
from .quantity import UNLIMITED, Bounded, Quantity, QuantityType, Unlimited

# Validators
from .validators import (
    validate_balance,
    validate_date_window,
    validate_pagination,
    validate_points_amount,
    validate_text,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "ConflictError",
    "ErrorSeverity",
    "InsufficientBalanceError",
    "InvalidStateError",
    "NotFoundError",
    "ProgressionDomainException",
    "UnauthorizedError",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
    "UNLIMITED",
    "Bounded",
    "Quantity",
    "QuantityType",
    "Unlimited",
    "validate_balance",
    "validate_date_window",
    "validate_pagination",
    "validate_points_amount",
    "validate_text",
]
