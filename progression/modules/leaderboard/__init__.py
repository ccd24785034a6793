"""
Leaderboard Module
==================

Domain: Live rankings over account balances

Services:
- LeaderboardService: Points, position, streak, earners, gainers
"""

from .service import LeaderboardService

__all__ = ["LeaderboardService"]
