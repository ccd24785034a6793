"""
StreakRecord: one run of consecutive calendar-day check-ins.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import List

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from progression.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime


class StreakRecord(Base, IdMixin, TimestampMixin):
    """
    Historical streak run.

    Schema-only:
    - user_id / account_id
    - streak_count: days in this run
    - streak_start_date / last_check_in_date
    - bonus_points_accrued: milestone bonuses paid during this run
    - milestones_achieved: ascending JSON list of day-counts, only grows
    - is_broken: closed run

    The partial unique index allows at most one open run per user.
    """

    __tablename__ = "streak_records"
    __table_args__ = (
        Index(
            "uq_streak_records_open_user",
            "user_id",
            unique=True,
            postgresql_where=text("is_broken = false"),
            sqlite_where=text("is_broken = 0"),
        ),
        Index("ix_streak_records_user_start", "user_id", "streak_start_date"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    streak_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    streak_start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    last_check_in_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    bonus_points_accrued: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    milestones_achieved: Mapped[List[int]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    is_broken: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<StreakRecord(id={self.id}, user_id={self.user_id!r}, "
            f"count={self.streak_count}, broken={self.is_broken})>"
        )
