"""
Account: a user's point balance and cumulative statistics.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from progression.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime


class Account(Base, IdMixin, TimestampMixin):
    """
    Per-user balance row, created lazily on first award or check-in.

    Schema-only:
    - user_id: externally issued identity (unique)
    - total_points: everything ever earned (equals lifetime_earned)
    - available_points: lifetime_earned - lifetime_spent, never negative
    - lifetime_earned / lifetime_spent: monotonically non-decreasing
    - current_streak / longest_streak / last_check_in: streak state

    Balance columns are only ever changed with single `col = col + :n`
    UPDATE statements; the check constraints are the last line behind them.
    """

    __tablename__ = "accounts"
    __table_args__ = (
        CheckConstraint("available_points >= 0", name="available_points_non_negative"),
        CheckConstraint("lifetime_earned >= 0", name="lifetime_earned_non_negative"),
        CheckConstraint("lifetime_spent >= 0", name="lifetime_spent_non_negative"),
        CheckConstraint(
            "available_points = lifetime_earned - lifetime_spent",
            name="available_points_balanced",
        ),
        CheckConstraint("total_points = lifetime_earned", name="total_points_earned"),
        Index("ix_accounts_total_points_streak", "total_points", "current_streak"),
        Index("ix_accounts_streak_rank", "current_streak", "longest_streak"),
    )

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )

    total_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    available_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lifetime_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_check_in: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime(),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Account(user_id={self.user_id!r}, available={self.available_points}, "
            f"total={self.total_points}, streak={self.current_streak})>"
        )
