"""
Unit tests for input and domain validators.

Test Coverage
-------------
- InputValidator: integers, ids, strings, enums, metadata
- Domain validators: point amounts, balances, pagination, text, date windows
"""

from datetime import datetime, timedelta, timezone

import pytest

from progression.core.validation.input_validator import InputValidator
from progression.database.models.enums import ActivityType, RewardCategory
from progression.modules.shared.exceptions import (
    InsufficientBalanceError,
    ValidationError,
)
from progression.modules.shared.validators import (
    validate_balance,
    validate_date_window,
    validate_pagination,
    validate_points_amount,
    validate_text,
)


# ============================================================================
# INPUT VALIDATOR
# ============================================================================


@pytest.mark.unit
class TestIntegerValidation:
    """Test InputValidator integer coercion and bounds."""

    def test_numeric_strings_are_converted(self):
        assert InputValidator.validate_integer("42", "points") == 42

    @pytest.mark.parametrize("value", [None, True, "abc", 1.5])
    def test_invalid_values_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_integer(value, "points")
        assert exc_info.value.field == "points"

    def test_bounds(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(5, "n", min_value=10)
        with pytest.raises(ValidationError):
            InputValidator.validate_integer(50, "n", max_value=10)
        assert InputValidator.validate_integer(10, "n", min_value=10, max_value=10) == 10

    def test_positive_integer_rejects_zero(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_positive_integer(0, "increment_by")

    def test_non_negative_allows_zero(self):
        assert InputValidator.validate_non_negative_integer(0, "offset") == 0

    def test_entity_id(self):
        assert InputValidator.validate_entity_id("7") == 7
        with pytest.raises(ValidationError):
            InputValidator.validate_entity_id(-1)


@pytest.mark.unit
class TestStringValidation:
    """Test user ids and free strings."""

    def test_user_id_is_stripped(self):
        assert InputValidator.validate_user_id("  user-1  ") == "user-1"

    @pytest.mark.parametrize("value", ["", "   ", 123, None, "x" * 65])
    def test_bad_user_ids(self, value):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_user_id(value)
        assert exc_info.value.error_code == "VALIDATION_USER_ID"

    def test_allowed_chars(self):
        assert InputValidator.validate_string("abc", "code", allowed_chars="a-z") == "abc"
        with pytest.raises(ValidationError):
            InputValidator.validate_string("ab!", "code", allowed_chars="a-z")

    def test_optional_string_blank_is_none(self):
        assert InputValidator.validate_optional_string("   ", "notes") is None
        assert InputValidator.validate_optional_string(None, "notes") is None
        assert InputValidator.validate_optional_string(" hi ", "notes") == "hi"


@pytest.mark.unit
class TestEnumValidation:
    """Test closed-enum coercion."""

    def test_member_passes_through(self):
        assert (
            InputValidator.validate_enum(ActivityType.POST_LIKE, ActivityType, "type")
            is ActivityType.POST_LIKE
        )

    def test_case_insensitive_names(self):
        assert (
            InputValidator.validate_enum("journal_entry", ActivityType, "type")
            is ActivityType.JOURNAL_ENTRY
        )
        assert (
            InputValidator.validate_enum(" self_care ", RewardCategory, "category")
            is RewardCategory.SELF_CARE
        )

    def test_unknown_value_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            InputValidator.validate_enum("DANCING", ActivityType, "activity_type")
        assert exc_info.value.error_code == "VALIDATION_ACTIVITY_TYPE"


@pytest.mark.unit
class TestMetadataValidation:
    """Test free-form metadata."""

    def test_none_passes(self):
        assert InputValidator.validate_metadata(None) is None

    def test_mapping_is_copied(self):
        original = {"session_type": "MEDITATION"}
        result = InputValidator.validate_metadata(original)
        assert result == original
        assert result is not original

    @pytest.mark.parametrize("value", [["a"], "text", {1: "x"}])
    def test_invalid_metadata(self, value):
        with pytest.raises(ValidationError):
            InputValidator.validate_metadata(value)

    def test_too_many_keys(self):
        with pytest.raises(ValidationError):
            InputValidator.validate_metadata({str(i): i for i in range(3)}, max_keys=2)


# ============================================================================
# DOMAIN VALIDATORS
# ============================================================================


@pytest.mark.unit
class TestDomainValidators:
    """Test raise-on-error domain validators."""

    @pytest.mark.parametrize("points", [0, -5, True, 1.0, "10"])
    def test_points_must_be_positive_int(self, points):
        with pytest.raises(ValidationError):
            validate_points_amount(points)

    def test_points_accepts_positive(self):
        validate_points_amount(1)

    def test_balance(self):
        validate_balance(required=100, available=100)
        with pytest.raises(InsufficientBalanceError) as exc_info:
            validate_balance(required=500, available=120)
        assert exc_info.value.details["deficit"] == 380

    def test_pagination_clamps_limit(self):
        assert validate_pagination(500, 0, max_limit=100) == (100, 0)
        assert validate_pagination(10, 20) == (10, 20)

    @pytest.mark.parametrize("limit,offset", [(0, 0), (-1, 0), (10, -1)])
    def test_pagination_rejects_bad_values(self, limit, offset):
        with pytest.raises(ValidationError):
            validate_pagination(limit, offset)

    def test_text(self):
        validate_text("Title", "title")
        validate_text(None, "terms", required=False)
        with pytest.raises(ValidationError):
            validate_text("  ", "title")
        with pytest.raises(ValidationError):
            validate_text("x" * 300, "title")

    def test_date_window(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        validate_date_window(start, start + timedelta(days=7))
        validate_date_window(None, start)
        with pytest.raises(ValidationError):
            validate_date_window(start, start)
