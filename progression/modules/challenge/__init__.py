"""
Challenge Module
================

Domain: Challenge templates and the enrollment state machine

Services:
- ChallengeService: Templates, enrollment, progress, expiry, stats
- ChallengeExpiryScheduler: Periodic expiry sweep
"""

from .expiry_scheduler import ChallengeExpiryScheduler, ChallengeExpirySchedulerConfig
from .service import ChallengeService

__all__ = [
    "ChallengeExpiryScheduler",
    "ChallengeExpirySchedulerConfig",
    "ChallengeService",
]
