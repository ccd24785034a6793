"""
Optional limit quantities.

A reward's stock and its per-user redemption limit are either unlimited or a
bounded non-negative count. They are modelled as the closed variant
`Unlimited | Bounded(n)` so every caller handles both branches explicitly;
`QuantityType` maps the variant onto a nullable integer column
(NULL <-> Unlimited).

Usage
-----
    stock = from_optional(None)       # UNLIMITED
    stock = from_optional(3)          # Bounded(3)

    if isinstance(stock, Bounded) and stock.value == 0:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

from sqlalchemy import Integer
from sqlalchemy.types import TypeDecorator


@dataclass(frozen=True)
class Unlimited:
    """No limit applies."""

    @property
    def is_tracked(self) -> bool:
        return False

    def allows(self, used: int = 0) -> bool:
        return True

    def __str__(self) -> str:
        return "unlimited"


@dataclass(frozen=True)
class Bounded:
    """A finite, non-negative limit."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"Bounded quantity must be an int, got {self.value!r}")
        if self.value < 0:
            raise ValueError(f"Bounded quantity must be >= 0, got {self.value}")

    @property
    def is_tracked(self) -> bool:
        return True

    def allows(self, used: int = 0) -> bool:
        """True while `used` is below the bound."""
        return used < self.value

    def __str__(self) -> str:
        return str(self.value)


Quantity = Union[Unlimited, Bounded]

UNLIMITED = Unlimited()


def from_optional(value: Optional[int]) -> Quantity:
    """None -> Unlimited, n -> Bounded(n)."""
    if value is None:
        return UNLIMITED
    return Bounded(value)


def to_optional(quantity: Quantity) -> Optional[int]:
    """Unlimited -> None, Bounded(n) -> n."""
    if isinstance(quantity, Unlimited):
        return None
    if isinstance(quantity, Bounded):
        return quantity.value
    raise TypeError(f"Not a quantity: {quantity!r}")


def coerce(value: Union[Quantity, int, None]) -> Quantity:
    """Accept a quantity, a plain int or None."""
    if isinstance(value, (Unlimited, Bounded)):
        return value
    return from_optional(value)


class QuantityType(TypeDecorator):
    """
    Nullable INTEGER column holding a `Quantity`.

    Plain ints are accepted on bind so SQL expressions such as
    `RewardItem.stock_quantity > 0` or `stock_quantity - 1` work unchanged.
    """

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> Optional[int]:
        if value is None:
            return None
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return to_optional(value)

    def process_result_value(self, value: Optional[int], dialect: Any) -> Quantity:
        return from_optional(value)
