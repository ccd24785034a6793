"""
Redemption: a user exchanging points for a catalog reward.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from progression.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime, utc_now
from ..enums import RedemptionStatus, enum_column
from .reward_item import RewardItem


class Redemption(Base, IdMixin, TimestampMixin):
    """
    Redemption record, created in the same transaction as the debit.

    Schema-only:
    - user_id / account_id / reward_id
    - points_spent: refunded in full on cancel
    - status: PENDING -> APPROVED -> DELIVERED, or PENDING -> CANCELLED
    - coupon_code: only for DISCOUNT_COUPON rewards
    - shipping_address (JSON) / notes / tracking_number
    - redeemed_at
    """

    __tablename__ = "redemptions"
    __table_args__ = (
        Index("ix_redemptions_user_status", "user_id", "status"),
        Index("ix_redemptions_reward_status", "reward_id", "status"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    reward_id: Mapped[int] = mapped_column(
        ForeignKey("reward_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    points_spent: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[RedemptionStatus] = mapped_column(
        enum_column(RedemptionStatus),
        nullable=False,
        default=RedemptionStatus.PENDING,
    )

    coupon_code: Mapped[Optional[str]] = mapped_column(
        String(32), nullable=True, unique=True
    )
    shipping_address: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    redeemed_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        index=True,
    )

    reward: Mapped[RewardItem] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<Redemption(id={self.id}, user_id={self.user_id!r}, "
            f"reward_id={self.reward_id}, status={self.status.value})>"
        )
