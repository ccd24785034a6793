"""
Unit tests for the domain exception hierarchy.
"""

import pytest

from progression.modules.shared.exceptions import (
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


@pytest.mark.unit
class TestErrorCodes:
    """Test the stable error codes callers branch on."""

    @pytest.mark.parametrize(
        "exc,code",
        [
            (NotFoundError("Challenge", 4), "CHALLENGE_NOT_FOUND"),
            (NotFoundError("Points Account", "u-1"), "POINTS_ACCOUNT_NOT_FOUND"),
            (ConflictError("Enrollment", "u-1:4", "already enrolled"), "ENROLLMENT_CONFLICT"),
            (InsufficientBalanceError(500, 120), "INSUFFICIENT_POINTS"),
            (InvalidStateError("cancel_redemption", "not pending"), "INVALID_CANCEL_REDEMPTION"),
            (UnauthorizedError("cancel_redemption", "u-2"), "UNAUTHORIZED_CANCEL_REDEMPTION"),
            (ValidationError("user_id", "required"), "VALIDATION_USER_ID"),
        ],
    )
    def test_codes(self, exc, code):
        assert exc.error_code == code
        assert str(exc).startswith(f"[{code}]")

    def test_base_defaults_to_class_name(self):
        exc = ProgressionDomainException("boom")
        assert exc.error_code == "ProgressionDomainException"
        assert exc.severity is ErrorSeverity.ERROR


@pytest.mark.unit
class TestErrorDetails:
    """Test structured details and serialization."""

    def test_insufficient_balance_details(self):
        exc = InsufficientBalanceError(required=500, current=120)
        assert exc.required == 500
        assert exc.current == 120
        assert exc.details["deficit"] == 380

    def test_not_found_without_identifier(self):
        exc = NotFoundError("Enrollment")
        assert exc.message == "Enrollment not found"

    def test_invalid_state_keeps_reason(self):
        exc = InvalidStateError("redeem", "Reward is out of stock")
        assert exc.reason == "Reward is out of stock"
        assert exc.action == "redeem"

    def test_to_dict(self):
        data = ValidationError("limit", "too big").to_dict()
        assert data["error_type"] == "ValidationError"
        assert data["error_code"] == "VALIDATION_LIMIT"
        assert data["severity"] == "info"
        assert data["is_retryable"] is False
        assert data["details"]["field"] == "limit"


@pytest.mark.unit
class TestErrorHelpers:
    """Test severity helpers used by logging."""

    def test_business_errors_do_not_alert(self):
        assert not should_alert(InvalidStateError("redeem", "inactive"))
        assert get_error_severity(UnauthorizedError("x", "u")) is ErrorSeverity.WARNING

    def test_unknown_errors_alert(self):
        assert get_error_severity(RuntimeError("x")) is ErrorSeverity.ERROR
        assert should_alert(RuntimeError("x"))

    def test_transient(self):
        assert is_transient_error(ProgressionDomainException("x", is_retryable=True))
        assert not is_transient_error(NotFoundError("Reward"))
        assert not is_transient_error(ValueError("x"))
