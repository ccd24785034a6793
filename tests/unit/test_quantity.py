"""
Unit tests for the Unlimited | Bounded quantity type.
"""

import pytest

from progression.modules.shared.quantity import (
    UNLIMITED,
    Bounded,
    QuantityType,
    Unlimited,
    coerce,
    from_optional,
    to_optional,
)


@pytest.mark.unit
class TestQuantityVariants:
    """Test the two quantity variants."""

    def test_unlimited_allows_everything(self):
        """Unlimited never runs out."""
        assert UNLIMITED.allows(10**9)
        assert not UNLIMITED.is_tracked

    def test_bounded_allows_below_bound(self):
        """A bound of 2 allows two uses and refuses the third."""
        limit = Bounded(2)
        assert limit.allows(0)
        assert limit.allows(1)
        assert not limit.allows(2)
        assert limit.is_tracked

    def test_bounded_zero_allows_nothing(self):
        """Zero stock refuses the first use."""
        assert not Bounded(0).allows(0)

    def test_negative_bound_rejected(self):
        """Bounds cannot be negative."""
        with pytest.raises(ValueError):
            Bounded(-1)

    @pytest.mark.parametrize("value", [True, 1.5, "3"])
    def test_non_int_bound_rejected(self, value):
        """Bounds must be real ints."""
        with pytest.raises(TypeError):
            Bounded(value)

    def test_variants_are_values(self):
        """Equal quantities compare equal."""
        assert Bounded(3) == Bounded(3)
        assert Unlimited() == UNLIMITED


@pytest.mark.unit
class TestQuantityConversions:
    """Test conversions to and from nullable integers."""

    def test_optional_round_trip(self):
        """None maps to Unlimited and n to Bounded(n)."""
        assert from_optional(None) == UNLIMITED
        assert from_optional(4) == Bounded(4)
        assert to_optional(UNLIMITED) is None
        assert to_optional(Bounded(4)) == 4

    def test_to_optional_rejects_other_values(self):
        """Only quantities can be rendered."""
        with pytest.raises(TypeError):
            to_optional(4)

    def test_coerce_accepts_all_forms(self):
        """Quantities pass through; ints and None are wrapped."""
        assert coerce(Bounded(1)) == Bounded(1)
        assert coerce(7) == Bounded(7)
        assert coerce(None) == UNLIMITED


@pytest.mark.unit
class TestQuantityColumn:
    """Test the QuantityType column mapping."""

    def test_bind_quantities_and_plain_ints(self):
        """Quantities and raw ints both bind to an integer or NULL."""
        column = QuantityType()
        assert column.process_bind_param(UNLIMITED, None) is None
        assert column.process_bind_param(Bounded(5), None) == 5
        assert column.process_bind_param(0, None) == 0
        assert column.process_bind_param(None, None) is None

    def test_result_values_become_quantities(self):
        """NULL reads back as Unlimited."""
        column = QuantityType()
        assert column.process_result_value(None, None) == UNLIMITED
        assert column.process_result_value(3, None) == Bounded(3)
