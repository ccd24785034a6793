"""
ChallengeTemplate: a challenge users can enroll in.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from progression.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime
from ..enums import ChallengeCategory, ChallengeType, Difficulty, enum_column


class ChallengeTemplate(Base, IdMixin, TimestampMixin):
    """
    Challenge definition.

    Schema-only:
    - title / description / icon
    - challenge_type: DAILY / WEEKLY / MONTHLY / MILESTONE
    - category: activity family counted toward progress
    - difficulty
    - required_count / point_reward / bonus_reward (optional)
    - start_date / end_date: optional window
    - is_active: the only column changed after creation
    """

    __tablename__ = "challenge_templates"
    __table_args__ = (
        CheckConstraint("required_count > 0", name="required_count_positive"),
        CheckConstraint("point_reward >= 0", name="point_reward_non_negative"),
        Index("ix_challenge_templates_active_category", "is_active", "category"),
        Index("ix_challenge_templates_end_date", "end_date"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    icon: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    challenge_type: Mapped[ChallengeType] = mapped_column(
        "type",
        enum_column(ChallengeType),
        nullable=False,
    )
    category: Mapped[ChallengeCategory] = mapped_column(
        enum_column(ChallengeCategory),
        nullable=False,
    )
    difficulty: Mapped[Difficulty] = mapped_column(
        enum_column(Difficulty),
        nullable=False,
        default=Difficulty.MEDIUM,
    )

    required_count: Mapped[int] = mapped_column(Integer, nullable=False)
    point_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    bonus_reward: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    start_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return (
            f"<ChallengeTemplate(id={self.id}, title={self.title!r}, "
            f"type={self.challenge_type.value}, required={self.required_count})>"
        )
