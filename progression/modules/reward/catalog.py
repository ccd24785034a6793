"""
Partner rewards installed by `RewardCatalogService.seed_rewards()`.

Seeding is idempotent by title. Coupon expiry dates are relative to the
moment of seeding.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List

from progression.database.models.enums import RewardCategory


def default_rewards(now: datetime) -> List[Dict[str, Any]]:
    return [
        # Wellness products
        {
            "title": "Meditation Cushion",
            "description": "Premium zafu meditation cushion for comfortable practice",
            "category": RewardCategory.WELLNESS_PRODUCT,
            "brand": "ZenSpace",
            "point_cost": 5000,
            "stock_quantity": 50,
            "image_url": "/rewards/meditation-cushion.jpg",
            "terms": "Shipping within 7-10 business days",
        },
        {
            "title": "Aromatherapy Essential Oil Set",
            "description": "Set of 6 calming essential oils for relaxation",
            "category": RewardCategory.WELLNESS_PRODUCT,
            "brand": "PureEssence",
            "point_cost": 3000,
            "stock_quantity": 100,
        },
        {
            "title": "Yoga Mat Premium",
            "description": "Eco-friendly, non-slip yoga mat",
            "category": RewardCategory.WELLNESS_PRODUCT,
            "brand": "FlowYoga",
            "point_cost": 4000,
            "stock_quantity": 75,
        },
        # Self-care
        {
            "title": "Luxury Bath Set",
            "description": "Bath salts, candles, and relaxation essentials",
            "category": RewardCategory.SELF_CARE,
            "brand": "Serenity Spa",
            "point_cost": 2500,
            "stock_quantity": 80,
        },
        {
            "title": "Sleep Mask & Earplugs Set",
            "description": "Premium silk sleep mask with memory foam earplugs",
            "category": RewardCategory.SELF_CARE,
            "brand": "RestWell",
            "point_cost": 1500,
            "stock_quantity": 150,
        },
        # Experiences
        {
            "title": "Virtual Yoga Class Pass",
            "description": "5-class pass for live virtual yoga sessions",
            "category": RewardCategory.EXPERIENCE,
            "brand": "YogaFlow Online",
            "point_cost": 2000,
            "metadata": {"sessions": 5},
        },
        {
            "title": "Guided Meditation Workshop",
            "description": "2-hour online meditation workshop with certified instructor",
            "category": RewardCategory.EXPERIENCE,
            "brand": "MindfulPath",
            "point_cost": 1800,
        },
        # Discount coupons
        {
            "title": "20% Off Wellness Store",
            "description": "20% discount on all wellness products",
            "category": RewardCategory.DISCOUNT_COUPON,
            "brand": "WellnessHub",
            "point_cost": 500,
            "expiry_date": now + timedelta(days=90),
        },
        {
            "title": "$10 Off Next Purchase",
            "description": "$10 discount coupon for partner stores",
            "category": RewardCategory.DISCOUNT_COUPON,
            "brand": "HealthyLife",
            "point_cost": 800,
            "expiry_date": now + timedelta(days=60),
        },
        # Premium features
        {
            "title": "1 Month Premium Upgrade",
            "description": "Unlock all premium features for 30 days",
            "category": RewardCategory.PREMIUM_FEATURE,
            "brand": "KAYA",
            "point_cost": 3000,
            "is_featured": True,
        },
        {
            "title": "Ad-Free Experience",
            "description": "Remove ads for 6 months",
            "category": RewardCategory.PREMIUM_FEATURE,
            "brand": "KAYA",
            "point_cost": 2000,
        },
    ]
