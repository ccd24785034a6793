"""
Points Module
=============

Domain: Point balances and the append-only transaction log

Services:
- PointsLedgerService: Award/spend, activity rewards, summaries, rank
"""

from .service import BALANCE_CHANGED_EVENT, LedgerEntry, PointsLedgerService

__all__ = [
    "BALANCE_CHANGED_EVENT",
    "LedgerEntry",
    "PointsLedgerService",
]
