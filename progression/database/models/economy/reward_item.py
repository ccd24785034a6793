"""
RewardItem: a redeemable catalog entry.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from progression.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime
from progression.modules.shared.quantity import UNLIMITED, Quantity, QuantityType
from ..enums import RewardCategory, enum_column


class RewardItem(Base, IdMixin, TimestampMixin):
    """
    Partner reward that users buy with points.

    Schema-only:
    - title / description / brand / image_url / terms
    - category: closed RewardCategory
    - point_cost: price in points
    - stock_quantity: Unlimited or Bounded(n), NULL in the column
    - redemption_limit_per_user: Unlimited or Bounded(n)
    - expiry_date: optional cut-off for redeeming
    - is_active / is_featured: catalog visibility flags

    Stock only moves through guarded UPDATEs (`stock_quantity > 0`).
    """

    __tablename__ = "reward_items"
    __table_args__ = (
        CheckConstraint(
            "stock_quantity IS NULL OR stock_quantity >= 0",
            name="stock_quantity_non_negative",
        ),
        CheckConstraint("point_cost > 0", name="point_cost_positive"),
        Index("ix_reward_items_active_featured", "is_active", "is_featured"),
        Index("ix_reward_items_category", "category"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[RewardCategory] = mapped_column(
        enum_column(RewardCategory),
        nullable=False,
    )
    brand: Mapped[str] = mapped_column(String(100), nullable=False)
    point_cost: Mapped[int] = mapped_column(Integer, nullable=False)

    stock_quantity: Mapped[Quantity] = mapped_column(
        QuantityType(),
        nullable=True,
        default=UNLIMITED,
    )
    redemption_limit_per_user: Mapped[Quantity] = mapped_column(
        QuantityType(),
        nullable=True,
        default=UNLIMITED,
    )

    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    meta_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<RewardItem(id={self.id}, title={self.title!r}, cost={self.point_cost}, "
            f"stock={self.stock_quantity})>"
        )
