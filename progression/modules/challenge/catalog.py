"""
Default challenge templates installed by `ChallengeService.seed_challenges()`.

Seeding is idempotent by title.
"""

from __future__ import annotations

from typing import Any, Dict, List

from progression.database.models.enums import ChallengeCategory, ChallengeType, Difficulty

DEFAULT_CHALLENGES: List[Dict[str, Any]] = [
    # Daily
    {
        "title": "5-Minute Meditation Master",
        "description": "Complete 5 meditation sessions today",
        "challenge_type": ChallengeType.DAILY,
        "required_count": 5,
        "point_reward": 100,
        "category": ChallengeCategory.MEDITATION,
        "difficulty": Difficulty.MEDIUM,
        "icon": "\U0001F9D8",
    },
    {
        "title": "Gratitude Warrior",
        "description": "Log 3 gratitude entries today",
        "challenge_type": ChallengeType.DAILY,
        "required_count": 3,
        "point_reward": 50,
        "category": ChallengeCategory.WELLNESS,
        "difficulty": Difficulty.EASY,
        "icon": "\U0001F64F",
    },
    # Weekly
    {
        "title": "Consistency Champion",
        "description": "Maintain a 7-day streak",
        "challenge_type": ChallengeType.WEEKLY,
        "required_count": 7,
        "point_reward": 300,
        "bonus_reward": 100,
        "category": ChallengeCategory.STREAKS,
        "difficulty": Difficulty.MEDIUM,
        "icon": "\U0001F525",
    },
    {
        "title": "Community Connector",
        "description": "Create 5 community posts this week",
        "challenge_type": ChallengeType.WEEKLY,
        "required_count": 5,
        "point_reward": 200,
        "category": ChallengeCategory.SOCIAL,
        "difficulty": Difficulty.EASY,
        "icon": "\U0001F4AC",
    },
    {
        "title": "Journal Journey",
        "description": "Write 10 journal entries this week",
        "challenge_type": ChallengeType.WEEKLY,
        "required_count": 10,
        "point_reward": 250,
        "category": ChallengeCategory.JOURNALING,
        "difficulty": Difficulty.MEDIUM,
        "icon": "\U0001F4DD",
    },
    # Monthly
    {
        "title": "Meditation Marathon",
        "description": "Complete 30 meditation sessions this month",
        "challenge_type": ChallengeType.MONTHLY,
        "required_count": 30,
        "point_reward": 1000,
        "bonus_reward": 500,
        "category": ChallengeCategory.MEDITATION,
        "difficulty": Difficulty.HARD,
        "icon": "\U0001F3C6",
    },
    {
        "title": "Wellness Warrior",
        "description": "Complete 50 wellness activities this month",
        "challenge_type": ChallengeType.MONTHLY,
        "required_count": 50,
        "point_reward": 1500,
        "category": ChallengeCategory.WELLNESS,
        "difficulty": Difficulty.HARD,
        "icon": "⭐",
    },
    # Milestone
    {
        "title": "First Steps",
        "description": "Complete your first meditation session",
        "challenge_type": ChallengeType.MILESTONE,
        "required_count": 1,
        "point_reward": 50,
        "category": ChallengeCategory.MEDITATION,
        "difficulty": Difficulty.EASY,
        "icon": "\U0001F31F",
    },
    {
        "title": "Century Club",
        "description": "Complete 100 total sessions",
        "challenge_type": ChallengeType.MILESTONE,
        "required_count": 100,
        "point_reward": 2000,
        "category": ChallengeCategory.MEDITATION,
        "difficulty": Difficulty.HARD,
        "icon": "\U0001F4AF",
    },
]
