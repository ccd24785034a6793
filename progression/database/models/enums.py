"""
Database Model Enums
====================

Closed enumerations for every categorical column in the schema.

Values are uppercase strings and are stored as VARCHAR (non-native enums), so
adding a member never needs a database type migration. Services import these
for state transitions and the activity-to-category table; an unhandled
member is a visible gap rather than a silent string mismatch.

These enums are declarative schema helpers, not business logic containers.
"""

from __future__ import annotations

import enum

from sqlalchemy import Enum as SAEnum


def enum_column(enum_class: type[enum.Enum]) -> SAEnum:
    """VARCHAR(32) column type storing the member value."""
    return SAEnum(
        enum_class,
        native_enum=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class ActivityType(str, enum.Enum):
    """
    Inbound activities reported by other subsystems.

    Each has an entry in the activity reward table.
    """

    SESSION_COMPLETE = "SESSION_COMPLETE"
    JOURNAL_ENTRY = "JOURNAL_ENTRY"
    MOOD_CHECKIN = "MOOD_CHECKIN"
    GRATITUDE_ENTRY = "GRATITUDE_ENTRY"
    COMMUNITY_POST = "COMMUNITY_POST"
    COMMUNITY_COMMENT = "COMMUNITY_COMMENT"
    POST_LIKE = "POST_LIKE"
    DAILY_CHECKIN = "DAILY_CHECKIN"
    PROGRAM_ENROLLMENT = "PROGRAM_ENROLLMENT"
    ACHIEVEMENT_UNLOCK = "ACHIEVEMENT_UNLOCK"
    EVENT_REGISTRATION = "EVENT_REGISTRATION"
    EVENT_ATTENDANCE = "EVENT_ATTENDANCE"
    THERAPIST_SESSION = "THERAPIST_SESSION"
    PROFILE_COMPLETE = "PROFILE_COMPLETE"
    FRIEND_REFERRAL = "FRIEND_REFERRAL"


class TransactionReason(str, enum.Enum):
    """
    Why a ledger transaction happened.

    Every activity type plus the engine's own reasons.
    """

    SESSION_COMPLETE = "SESSION_COMPLETE"
    JOURNAL_ENTRY = "JOURNAL_ENTRY"
    MOOD_CHECKIN = "MOOD_CHECKIN"
    GRATITUDE_ENTRY = "GRATITUDE_ENTRY"
    COMMUNITY_POST = "COMMUNITY_POST"
    COMMUNITY_COMMENT = "COMMUNITY_COMMENT"
    POST_LIKE = "POST_LIKE"
    DAILY_CHECKIN = "DAILY_CHECKIN"
    PROGRAM_ENROLLMENT = "PROGRAM_ENROLLMENT"
    ACHIEVEMENT_UNLOCK = "ACHIEVEMENT_UNLOCK"
    EVENT_REGISTRATION = "EVENT_REGISTRATION"
    EVENT_ATTENDANCE = "EVENT_ATTENDANCE"
    THERAPIST_SESSION = "THERAPIST_SESSION"
    PROFILE_COMPLETE = "PROFILE_COMPLETE"
    FRIEND_REFERRAL = "FRIEND_REFERRAL"
    STREAK_FREEZE = "STREAK_FREEZE"
    CHALLENGE_COMPLETE = "CHALLENGE_COMPLETE"
    REWARD_REDEMPTION = "REWARD_REDEMPTION"
    REDEMPTION_CANCELLED = "REDEMPTION_CANCELLED"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"

    @classmethod
    def for_activity(cls, activity: ActivityType) -> "TransactionReason":
        return cls(activity.value)


class ChallengeType(str, enum.Enum):
    """Cadence of a challenge template."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    MILESTONE = "MILESTONE"


class ChallengeCategory(str, enum.Enum):
    """Activity family a challenge counts."""

    MEDITATION = "MEDITATION"
    JOURNALING = "JOURNALING"
    SOCIAL = "SOCIAL"
    WELLNESS = "WELLNESS"
    STREAKS = "STREAKS"


class Difficulty(str, enum.Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class EnrollmentStatus(str, enum.Enum):
    """
    Enrollment state machine.

    ACTIVE -> COMPLETED and ACTIVE -> EXPIRED; both targets are terminal.
    """

    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not EnrollmentStatus.ACTIVE


class RewardCategory(str, enum.Enum):
    WELLNESS_PRODUCT = "WELLNESS_PRODUCT"
    SELF_CARE = "SELF_CARE"
    EXPERIENCE = "EXPERIENCE"
    DISCOUNT_COUPON = "DISCOUNT_COUPON"
    PREMIUM_FEATURE = "PREMIUM_FEATURE"


class RedemptionStatus(str, enum.Enum):
    """
    Redemption lifecycle.

    PENDING -> APPROVED -> DELIVERED administratively; PENDING -> CANCELLED
    only through a user cancel. DELIVERED and CANCELLED are terminal.
    """

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (RedemptionStatus.DELIVERED, RedemptionStatus.CANCELLED)

    def can_advance_to(self, target: "RedemptionStatus") -> bool:
        """True if `target` lies strictly later on PENDING -> APPROVED -> DELIVERED."""
        if self.is_terminal or target is RedemptionStatus.CANCELLED:
            return False
        return _FULFILMENT_ORDER[target] > _FULFILMENT_ORDER[self]


_FULFILMENT_ORDER = {
    RedemptionStatus.PENDING: 0,
    RedemptionStatus.APPROVED: 1,
    RedemptionStatus.DELIVERED: 2,
}
