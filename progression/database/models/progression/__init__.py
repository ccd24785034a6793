"""
Progression domain ORM models.

Exports:
- ChallengeEnrollment
- ChallengeTemplate
- StreakRecord
"""

from progression.core.database.base import Base

from .challenge_enrollment import ChallengeEnrollment
from .challenge_template import ChallengeTemplate
from .streak_record import StreakRecord

__all__ = [
    "Base",
    "ChallengeEnrollment",
    "ChallengeTemplate",
    "StreakRecord",
]
