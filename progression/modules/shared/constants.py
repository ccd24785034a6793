"""
Progression Economy Constants

Purpose
-------
Provide the default economy values for the progression engine: activity
rewards, point milestones, streak rules, challenge timing, reward catalog
limits and leaderboard windows.

IMPORTANT:
These are the built-in defaults. Runtime values come from `ConfigManager`
(`config/economy.yaml`); services read the YAML key first and fall back to
the constant here when the key is missing.

Design Notes
------------
- Values are annotated with typing.Final to signal immutability
- Grouped by economy subsystem (points, streaks, challenges, rewards)
- Pure data only; no side effects at import time
"""

from __future__ import annotations

from typing import Dict, Final, Mapping, Tuple

# ============================================================================
# POINTS LEDGER
# ============================================================================

# Activity type -> (points, description)
ACTIVITY_REWARDS: Final[Mapping[str, Tuple[int, str]]] = {
    "SESSION_COMPLETE": (50, "Completed a wellness session"),
    "JOURNAL_ENTRY": (20, "Created a journal entry"),
    "MOOD_CHECKIN": (10, "Logged daily mood"),
    "GRATITUDE_ENTRY": (15, "Shared gratitude"),
    "COMMUNITY_POST": (25, "Created a community post"),
    "COMMUNITY_COMMENT": (10, "Commented on a post"),
    "POST_LIKE": (5, "Liked a community post"),
    "DAILY_CHECKIN": (10, "Daily check-in"),
    "PROGRAM_ENROLLMENT": (30, "Enrolled in a program"),
    "ACHIEVEMENT_UNLOCK": (100, "Unlocked an achievement"),
    "EVENT_REGISTRATION": (20, "Registered for an event"),
    "EVENT_ATTENDANCE": (50, "Attended an event"),
    "THERAPIST_SESSION": (75, "Completed therapist session"),
    "PROFILE_COMPLETE": (50, "Completed your profile"),
    "FRIEND_REFERRAL": (200, "Referred a friend"),
}

POINT_MILESTONES: Final[Tuple[int, ...]] = (1000, 2500, 5000, 10000, 25000, 50000)
RECENT_TRANSACTIONS_LIMIT: Final[int] = 10
TRANSACTION_HISTORY_MAX_LIMIT: Final[int] = 100

# ============================================================================
# STREAKS
# ============================================================================

STREAK_BASE_POINTS: Final[int] = 10  # Awarded on every counted check-in
STREAK_FREEZE_COST: Final[int] = 100
STREAK_TIMEZONE: Final[str] = "UTC"  # Zone that defines a calendar day

# Streak length in days -> one-time bonus on the day the count is reached
STREAK_MILESTONES: Final[Dict[int, int]] = {
    3: 20,
    7: 50,
    14: 100,
    30: 200,
    60: 400,
    100: 750,
    180: 1500,
    365: 3000,
}

# ============================================================================
# CHALLENGES
# ============================================================================

EARLY_COMPLETION_DAYS: Final[int] = 3  # Bonus only if MORE than this remain
EXPIRY_SWEEP_INTERVAL_SECONDS: Final[int] = 300
CHALLENGE_LEADERBOARD_LIMIT: Final[int] = 10

# ============================================================================
# REWARDS
# ============================================================================

COUPON_SUFFIX_LENGTH: Final[int] = 8
COUPON_PREFIX_LENGTH: Final[int] = 3
FEATURED_REWARDS_LIMIT: Final[int] = 6
POPULAR_REWARDS_LIMIT: Final[int] = 10

# ============================================================================
# LEADERBOARD
# ============================================================================

LEADERBOARD_DEFAULT_LIMIT: Final[int] = 10
LEADERBOARD_MAX_LIMIT: Final[int] = 100
LEADERBOARD_POSITION_WINDOW: Final[int] = 5  # Ranks shown on each side
TOP_GAINERS_DEFAULT_DAYS: Final[int] = 7
