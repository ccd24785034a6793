"""
Activity -> challenge category table.

Decides which ACTIVE enrollments an inbound activity advances. Every
`ChallengeCategory` has exactly one rule; `RULES` is checked for
completeness at import so a new category cannot be silently ignored.

    MEDITATION  <- SESSION_COMPLETE with session_type MEDITATION
    JOURNALING  <- JOURNAL_ENTRY
    SOCIAL      <- COMMUNITY_POST, COMMUNITY_COMMENT, POST_LIKE
    WELLNESS    <- SESSION_COMPLETE, MOOD_CHECKIN, GRATITUDE_ENTRY
    STREAKS     <- DAILY_CHECKIN
"""

from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Set

from progression.database.models.enums import ActivityType, ChallengeCategory

Rule = Callable[[ActivityType, Mapping[str, Any]], bool]


def _any_of(*activities: ActivityType) -> Rule:
    allowed: FrozenSet[ActivityType] = frozenset(activities)

    def rule(activity: ActivityType, metadata: Mapping[str, Any]) -> bool:
        return activity in allowed

    return rule


def _meditation_session(activity: ActivityType, metadata: Mapping[str, Any]) -> bool:
    if activity is not ActivityType.SESSION_COMPLETE:
        return False
    session_type = metadata.get("session_type")
    return isinstance(session_type, str) and session_type.upper() == "MEDITATION"


RULES: Dict[ChallengeCategory, Rule] = {
    ChallengeCategory.MEDITATION: _meditation_session,
    ChallengeCategory.JOURNALING: _any_of(ActivityType.JOURNAL_ENTRY),
    ChallengeCategory.SOCIAL: _any_of(
        ActivityType.COMMUNITY_POST,
        ActivityType.COMMUNITY_COMMENT,
        ActivityType.POST_LIKE,
    ),
    ChallengeCategory.WELLNESS: _any_of(
        ActivityType.SESSION_COMPLETE,
        ActivityType.MOOD_CHECKIN,
        ActivityType.GRATITUDE_ENTRY,
    ),
    ChallengeCategory.STREAKS: _any_of(ActivityType.DAILY_CHECKIN),
}

_missing = set(ChallengeCategory) - set(RULES)
if _missing:
    raise RuntimeError(f"No activity rule for categories: {sorted(c.value for c in _missing)}")


def matches(
    category: ChallengeCategory,
    activity: ActivityType,
    metadata: Optional[Mapping[str, Any]] = None,
) -> bool:
    """True if `activity` advances challenges of `category`."""
    return RULES[category](activity, metadata or {})


def categories_for(
    activity: ActivityType, metadata: Optional[Mapping[str, Any]] = None
) -> Set[ChallengeCategory]:
    """Every category the activity advances."""
    return {category for category in RULES if matches(category, activity, metadata)}
