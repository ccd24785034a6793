"""
Reward Module
=============

Domain: Partner reward catalog and point redemptions

Services:
- RewardCatalogService: Catalog management and reads
- RedemptionService: Redeem, cancel, fulfilment status, statistics
"""

from .catalog_service import RewardCatalogService
from .redemption_service import RedemptionService

__all__ = [
    "RedemptionService",
    "RewardCatalogService",
]
