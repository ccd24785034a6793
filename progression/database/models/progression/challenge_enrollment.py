"""
ChallengeEnrollment: a user's participation in one challenge template.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from progression.core.database.base import Base, IdMixin, TimestampMixin, UTCDateTime
from ..enums import EnrollmentStatus, enum_column
from .challenge_template import ChallengeTemplate


class ChallengeEnrollment(Base, IdMixin, TimestampMixin):
    """
    Enrollment state machine row.

    Schema-only:
    - user_id / challenge_id / account_id
    - status: ACTIVE -> COMPLETED | EXPIRED
    - progress: only increases while ACTIVE
    - points_earned: reward paid on completion
    - completed_at

    Status moves only through `UPDATE ... WHERE status = 'ACTIVE'`.
    """

    __tablename__ = "challenge_enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_enrollment_user_challenge"),
        CheckConstraint("progress >= 0", name="progress_non_negative"),
        Index("ix_challenge_enrollments_user_status", "user_id", "status"),
        Index("ix_challenge_enrollments_challenge_status", "challenge_id", "status"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    challenge_id: Mapped[int] = mapped_column(
        ForeignKey("challenge_templates.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[EnrollmentStatus] = mapped_column(
        enum_column(EnrollmentStatus),
        nullable=False,
        default=EnrollmentStatus.ACTIVE,
    )

    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    points_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    challenge: Mapped[ChallengeTemplate] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return (
            f"<ChallengeEnrollment(id={self.id}, user_id={self.user_id!r}, "
            f"challenge_id={self.challenge_id}, status={self.status.value}, "
            f"progress={self.progress})>"
        )
