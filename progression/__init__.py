"""
KAYA progression & virtual-economy engine.

Points ledger, calendar-day streaks, challenge enrollments and reward
redemptions sharing one per-user point balance.
"""

__version__ = "1.0.0"
