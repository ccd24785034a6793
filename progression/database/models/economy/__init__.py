"""
Economy domain ORM models.

Exports:
- Account
- PointTransaction
- Redemption
- RewardItem
"""

from progression.core.database.base import Base

from .account import Account
from .point_transaction import PointTransaction
from .redemption import Redemption
from .reward_item import RewardItem

__all__ = [
    "Base",
    "Account",
    "PointTransaction",
    "Redemption",
    "RewardItem",
]
