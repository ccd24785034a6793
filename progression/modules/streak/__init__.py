"""
Streak Module
=============

Domain: Calendar-day check-in continuity and milestone bonuses

Services:
- StreakService: Check-in, streak freeze, streak reads
"""

from .service import StreakService

__all__ = ["StreakService"]
