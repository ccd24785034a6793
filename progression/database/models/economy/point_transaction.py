"""
PointTransaction: immutable, signed record of a single balance change.
Pure schema only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from progression.core.database.base import Base, IdMixin, UTCDateTime, utc_now
from ..enums import TransactionReason, enum_column


class PointTransaction(Base, IdMixin):
    """
    Append-only ledger entry.

    Schema-only:
    - user_id / account_id: owner
    - points: signed delta (+award, -spend)
    - reason: closed TransactionReason
    - description: human-readable line
    - meta_data: JSON context ("metadata" column)
    - created_at: insertion time

    Written in the same transaction as the balance UPDATE it records and
    never updated afterwards.
    """

    __tablename__ = "point_transactions"
    __table_args__ = (
        Index("ix_point_transactions_user_time", "user_id", "created_at"),
        Index("ix_point_transactions_reason", "reason"),
    )

    user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    points: Mapped[int] = mapped_column(Integer, nullable=False)

    reason: Mapped[TransactionReason] = mapped_column(
        enum_column(TransactionReason),
        nullable=False,
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    meta_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=utc_now,
        index=True,
    )

    def __repr__(self) -> str:
        return (
            f"<PointTransaction(id={self.id}, user_id={self.user_id!r}, "
            f"points={self.points:+d}, reason={self.reason.value})>"
        )
