"""
Progression Economy Formulas

Purpose
-------
Pure calculation functions for the economy rules: streak milestone bonuses,
point milestones, early-completion bonuses, completion rates, calendar-day
arithmetic for check-ins and coupon code generation.

Design Notes
------------
All formulas:
- Accept parameters explicitly (milestone tables, "now", timezones)
- Return calculated values
- Never touch the database or ConfigManager

Usage
-----
    from progression.modules.shared.formulas import streak_bonus

    bonus = streak_bonus(7, {3: 20, 7: 50})  # 50
"""

from __future__ import annotations

import math
import secrets
import string
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Mapping, Optional, Sequence

from progression.modules.shared.constants import (
    COUPON_PREFIX_LENGTH,
    COUPON_SUFFIX_LENGTH,
)

_COUPON_ALPHABET = string.ascii_uppercase + string.digits
_SECONDS_PER_DAY = 86400


# ============================================================================
# STREAKS
# ============================================================================


def streak_bonus(days: int, milestones: Mapping[int, int]) -> int:
    """
    Bonus for reaching exactly `days` consecutive check-ins.

    Only the exact milestone day pays out; passing a milestone without
    landing on it grants nothing.

    Example:
        >>> streak_bonus(7, {3: 20, 7: 50})
        50
        >>> streak_bonus(8, {3: 20, 7: 50})
        0
    """
    return int(milestones.get(days, 0))


def achieved_milestones(days: int, milestones: Mapping[int, int]) -> List[int]:
    """Milestone day-counts at or below `days`, ascending."""
    return sorted(m for m in milestones if m <= days)


def next_streak_milestone(
    days: int, milestones: Mapping[int, int]
) -> Optional[Dict[str, int]]:
    """
    First milestone strictly above `days`.

    Returns:
        {"days": n, "bonus": b}, or None once every milestone is behind
    """
    upcoming = sorted(m for m in milestones if m > days)
    if not upcoming:
        return None
    target = upcoming[0]
    return {"days": target, "bonus": int(milestones[target])}


def next_points_milestone(total_points: int, milestones: Sequence[int]) -> Optional[int]:
    """First points milestone strictly above `total_points`, or None."""
    for milestone in sorted(milestones):
        if milestone > total_points:
            return milestone
    return None


def calendar_day(moment: datetime, zone: tzinfo) -> date:
    """
    Calendar date of `moment` as seen in `zone`.

    Naive datetimes are treated as UTC.
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone).date()


def day_gap(last: datetime, now: datetime, zone: tzinfo) -> int:
    """
    Whole calendar days between `last` and `now` in `zone`.

    0 means the same day, 1 means `last` was yesterday.
    """
    return (calendar_day(now, zone) - calendar_day(last, zone)).days


# ============================================================================
# CHALLENGES
# ============================================================================


def days_remaining(end_date: datetime, now: datetime) -> int:
    """
    Days left before `end_date`, rounded up.

    Example:
        >>> days_remaining(now + timedelta(days=3, hours=1), now)
        4
    """
    return math.ceil((end_date - now).total_seconds() / _SECONDS_PER_DAY)


def challenge_completion_reward(
    point_reward: int,
    bonus_reward: Optional[int],
    end_date: Optional[datetime],
    now: datetime,
    early_completion_days: int,
) -> int:
    """
    Points awarded when an enrollment completes.

    The bonus applies only when the template has an end date and MORE than
    `early_completion_days` remain.

    Example:
        >>> challenge_completion_reward(100, 50, None, now, 3)
        100
        >>> challenge_completion_reward(100, 50, now + timedelta(days=10), now, 3)
        150
    """
    total = point_reward
    if bonus_reward and end_date is not None:
        if days_remaining(end_date, now) > early_completion_days:
            total += bonus_reward
    return total


def completion_rate(completed: int, total_enrolled: int) -> float:
    """Percentage of enrollments completed; 0 when nobody enrolled."""
    if total_enrolled <= 0:
        return 0.0
    return completed / total_enrolled * 100


# ============================================================================
# REWARDS
# ============================================================================


def generate_coupon_code(brand: str, suffix_length: int = COUPON_SUFFIX_LENGTH) -> str:
    """
    Coupon code `<BRAND PREFIX>-<RANDOM SUFFIX>`.

    The prefix is the first three characters of the brand, uppercased; the
    suffix is uppercase alphanumeric from a CSPRNG.

    Example:
        >>> generate_coupon_code("Kaya Wellness")  # doctest: +SKIP
        'KAY-7Q2M0ZXA'
    """
    prefix = (brand or "")[:COUPON_PREFIX_LENGTH].upper()
    suffix = "".join(secrets.choice(_COUPON_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}-{suffix}"


def window_start(now: datetime, days: int) -> datetime:
    """Start of a trailing window of `days` ending at `now`."""
    return now - timedelta(days=days)
