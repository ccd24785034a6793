"""
Progression Validation Package

Expose the low-level input validation primitives (`InputValidator`) used by
every service before it opens a transaction.

Business rule enforcement stays in the services; this package only checks
types, bounds and closed enum membership.
"""

from progression.core.validation.input_validator import InputValidator

__all__ = [
    "InputValidator",
]
