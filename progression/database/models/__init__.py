"""
Database Models Package
========================

All SQLAlchemy ORM models for the progression engine, organized by domain.

All models:
- Are schema-only, no business logic
- Use Mapped[] syntax with mapped_column()
- Inherit from the shared mixins (IdMixin, TimestampMixin)
- Declare explicit foreign keys with CASCADE rules
- Store enums as closed VARCHAR values and datetimes as aware UTC

Domain Organization:
--------------------
- economy: Account, PointTransaction, RewardItem, Redemption
- progression: StreakRecord, ChallengeTemplate, ChallengeEnrollment
- enums: Shared closed enumerations

Importing this package registers every table on `Base.metadata`.
"""

from progression.core.database.base import Base

# Economy models
from .economy import (
    Account,
    PointTransaction,
    Redemption,
    RewardItem,
)

# Progression models
from .progression import (
    ChallengeEnrollment,
    ChallengeTemplate,
    StreakRecord,
)

# Enums
from .enums import (
    ActivityType,
    ChallengeCategory,
    ChallengeType,
    Difficulty,
    EnrollmentStatus,
    RedemptionStatus,
    RewardCategory,
    TransactionReason,
)

__all__ = [
    "Base",
    "Account",
    "PointTransaction",
    "Redemption",
    "RewardItem",
    "ChallengeEnrollment",
    "ChallengeTemplate",
    "StreakRecord",
    "ActivityType",
    "ChallengeCategory",
    "ChallengeType",
    "Difficulty",
    "EnrollmentStatus",
    "RedemptionStatus",
    "RewardCategory",
    "TransactionReason",
]
