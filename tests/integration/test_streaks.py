"""
Integration tests for StreakService.

Test Coverage
-------------
- Seven consecutive check-ins with milestone bonuses on days 3 and 7
- Same-day idempotency
- Gaps reset the streak and close the streak record
- Streak freezes bridge a missed day
- needs_check_in follows the same calendar-day model
- Streak reads and leaderboard
"""

import pytest

from progression.database.models.enums import TransactionReason
from progression.modules.shared.exceptions import InsufficientBalanceError, NotFoundError

pytestmark = pytest.mark.integration


# ============================================================================
# CHECK-INS
# ============================================================================


class TestCheckIn:
    """Test daily check-ins."""

    async def test_first_check_in(self, streaks, ledger):
        result = await streaks.check_in("user-a")

        assert result == {
            "streak": 1,
            "points_earned": 10,
            "streak_bonus": 0,
            "next_milestone": {"days": 3, "bonus": 20},
            "already_checked_in": False,
        }
        summary = await ledger.get_summary("user-a")
        assert summary["available_points"] == 10
        assert summary["current_streak"] == 1
        assert summary["longest_streak"] == 1

    async def test_seven_day_streak(self, streaks, ledger, clock):
        """Day 3 pays a 20 bonus and day 7 a 50 bonus."""
        results = []
        for day in range(7):
            if day:
                clock.advance(days=1)
            results.append(await streaks.check_in("user-a"))

        assert [r["streak"] for r in results] == [1, 2, 3, 4, 5, 6, 7]
        assert [r["streak_bonus"] for r in results] == [0, 0, 20, 0, 0, 0, 50]
        assert results[-1]["points_earned"] == 60
        assert results[-1]["next_milestone"] == {"days": 14, "bonus": 100}

        summary = await ledger.get_summary("user-a")
        assert summary["available_points"] == 140
        assert (await ledger.verify_ledger("user-a"))["consistent"]

    async def test_same_day_check_in_is_idempotent(self, streaks, ledger, clock):
        await streaks.check_in("user-a")
        clock.advance(hours=6)

        again = await streaks.check_in("user-a")

        assert again["already_checked_in"] is True
        assert again["points_earned"] == 0
        assert again["streak"] == 1
        assert (await ledger.get_summary("user-a"))["available_points"] == 10
        assert len(await ledger.get_transaction_history("user-a")) == 1

    async def test_gap_resets_streak(self, streaks, ledger, clock):
        await streaks.check_in("user-a")
        clock.advance(days=1)
        await streaks.check_in("user-a")
        clock.advance(days=2)

        result = await streaks.check_in("user-a")

        assert result["streak"] == 1
        summary = await ledger.get_summary("user-a")
        assert summary["current_streak"] == 1
        assert summary["longest_streak"] == 2

        history = await streaks.get_streak_history("user-a")
        assert [(r["streak_count"], r["is_broken"]) for r in history] == [(1, False), (2, True)]

    async def test_check_in_publishes_events(self, streaks, events):
        await streaks.check_in("user-a")

        (checked_in,) = events.named("streak.checked_in")
        assert checked_in["streak"] == 1
        assert checked_in["points_earned"] == 10
        assert events.named("points.balance_changed")[0]["reason"] == "DAILY_CHECKIN"

    async def test_base_points_from_config(self, streaks, config_manager):
        config_manager.set("streaks.base_points", 15)

        result = await streaks.check_in("user-a")

        assert result["points_earned"] == 15


# ============================================================================
# FREEZES
# ============================================================================


class TestStreakFreeze:
    """Test buying a streak freeze."""

    async def test_freeze_bridges_missed_day(self, streaks, ledger, clock):
        await ledger.award_points("user-a", 200, TransactionReason.ADMIN_ADJUSTMENT)
        await streaks.check_in("user-a")
        clock.advance(days=1)

        # Missed day bridged by a freeze
        freeze = await streaks.use_streak_freeze("user-a")
        clock.advance(days=1)
        result = await streaks.check_in("user-a")

        assert freeze["points_spent"] == 100
        assert freeze["available_points"] == 110
        assert result["streak"] == 2

    async def test_freeze_without_points(self, streaks, ledger):
        await streaks.check_in("user-a")

        with pytest.raises(InsufficientBalanceError):
            await streaks.use_streak_freeze("user-a")

        summary = await ledger.get_summary("user-a")
        assert summary["available_points"] == 10

    async def test_freeze_without_account(self, streaks):
        with pytest.raises(InsufficientBalanceError):
            await streaks.use_streak_freeze("ghost")

    async def test_freeze_counts_as_todays_check_in(self, streaks, ledger, clock):
        """After a freeze the same calendar day is already covered."""
        await ledger.award_points("user-a", 200, TransactionReason.ADMIN_ADJUSTMENT)
        await streaks.use_streak_freeze("user-a")

        result = await streaks.check_in("user-a")

        assert result["already_checked_in"] is True
        assert await streaks.needs_check_in("user-a") is False

    async def test_freeze_event(self, streaks, ledger, events):
        await ledger.award_points("user-a", 100, TransactionReason.ADMIN_ADJUSTMENT)

        await streaks.use_streak_freeze("user-a")

        (freeze,) = events.named("streak.freeze_used")
        assert freeze["points_spent"] == 100


# ============================================================================
# READS
# ============================================================================


class TestStreakReads:
    """Test needs_check_in and streak reads."""

    async def test_needs_check_in_calendar_days(self, streaks, clock):
        assert await streaks.needs_check_in("user-a") is True

        await streaks.check_in("user-a")
        assert await streaks.needs_check_in("user-a") is False

        clock.advance(hours=11, minutes=59)
        assert await streaks.needs_check_in("user-a") is False

        clock.advance(minutes=2)
        assert await streaks.needs_check_in("user-a") is True

    async def test_get_user_streak(self, streaks, clock):
        for day in range(3):
            if day:
                clock.advance(days=1)
            await streaks.check_in("user-a")

        streak = await streaks.get_user_streak("user-a")

        assert streak["current_streak"] == 3
        assert streak["longest_streak"] == 3
        assert streak["achieved_milestones"] == [3]
        assert streak["total_bonus_earned"] == 20
        assert streak["next_milestone"] == {"days": 7, "bonus": 50}

    async def test_get_user_streak_unknown(self, streaks):
        with pytest.raises(NotFoundError):
            await streaks.get_user_streak("ghost")

    async def test_streak_leaderboard(self, streaks, clock):
        await streaks.check_in("user-a")
        await streaks.check_in("user-b")
        clock.advance(days=1)
        await streaks.check_in("user-b")

        board = await streaks.get_streak_leaderboard()

        assert [(row["user_id"], row["current_streak"]) for row in board] == [
            ("user-b", 2),
            ("user-a", 1),
        ]
