"""
Integration tests for ChallengeService.

Test Coverage
-------------
- Template creation, reads, deactivation and seeding
- Enrollment rules (unknown, inactive, not started, ended, duplicate)
- Progress and exactly-once completion with early-completion bonus
- Activity routing to matching categories
- Expiry sweeps
- Challenge leaderboard and statistics
"""

from datetime import timedelta

import pytest

from progression.database.models.enums import ActivityType, ChallengeCategory, ChallengeType
from progression.modules.shared.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)

pytestmark = pytest.mark.integration


# ============================================================================
# TEMPLATES
# ============================================================================


class TestTemplates:
    """Test challenge template management."""

    async def test_create_challenge(self, make_challenge, events):
        challenge = await make_challenge(bonus_reward=50, icon="*")

        assert challenge["id"] is not None
        assert challenge["type"] == "WEEKLY"
        assert challenge["category"] == "WELLNESS"
        assert challenge["required_count"] == 5
        assert challenge["bonus_reward"] == 50
        assert challenge["is_active"] is True
        assert events.named("challenge.created")[0]["challenge_id"] == challenge["id"]

    async def test_create_accepts_string_enums(self, make_challenge):
        challenge = await make_challenge(type="daily", category="social", difficulty="easy")

        assert challenge["type"] == "DAILY"
        assert challenge["category"] == "SOCIAL"
        assert challenge["difficulty"] == "EASY"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": ""},
            {"required_count": 0},
            {"point_reward": -1},
            {"category": "KNITTING"},
        ],
    )
    async def test_invalid_templates_rejected(self, make_challenge, overrides):
        with pytest.raises(ValidationError):
            await make_challenge(**overrides)

    async def test_end_must_follow_start(self, make_challenge, clock):
        with pytest.raises(ValidationError):
            await make_challenge(start_date=clock.now, end_date=clock.now - timedelta(days=1))

    async def test_get_challenge_by_id(self, challenges, make_challenge):
        challenge = await make_challenge()

        assert (await challenges.get_challenge_by_id(challenge["id"]))["title"] == "Test Challenge"
        with pytest.raises(NotFoundError) as exc_info:
            await challenges.get_challenge_by_id(9999)
        assert exc_info.value.error_code == "CHALLENGE_NOT_FOUND"

    async def test_active_challenges_filtering(self, challenges, make_challenge, clock):
        weekly = await make_challenge(title="Weekly")
        daily = await make_challenge(title="Daily", type=ChallengeType.DAILY)
        social = await make_challenge(title="Social", category=ChallengeCategory.SOCIAL)
        await make_challenge(title="Future", start_date=clock.now + timedelta(days=2))
        hidden = await make_challenge(title="Hidden")
        await challenges.deactivate_challenge(hidden["id"])

        active = await challenges.get_active_challenges()
        wellness = await challenges.get_active_challenges(ChallengeCategory.WELLNESS)

        assert active[0]["id"] == daily["id"]
        assert {c["title"] for c in active} == {"Weekly", "Daily", "Social"}
        assert {c["id"] for c in wellness} == {weekly["id"], daily["id"]}
        assert social["id"] not in {c["id"] for c in wellness}

    async def test_deactivate_unknown(self, challenges):
        with pytest.raises(NotFoundError):
            await challenges.deactivate_challenge(9999)

    async def test_seed_is_idempotent(self, challenges):
        first = await challenges.seed_challenges()
        second = await challenges.seed_challenges()

        assert len(first) == 9
        assert second == []
        assert len(await challenges.get_active_challenges()) == 9


# ============================================================================
# ENROLLMENT
# ============================================================================


class TestEnrollment:
    """Test enrollment rules."""

    async def test_enroll_creates_account(self, challenges, ledger, make_challenge, events):
        challenge = await make_challenge()

        enrollment = await challenges.enroll("user-a", challenge["id"])

        assert enrollment["status"] == "ACTIVE"
        assert enrollment["progress"] == 0
        assert enrollment["challenge"]["id"] == challenge["id"]
        assert (await ledger.get_summary("user-a"))["available_points"] == 0
        assert events.named("challenge.enrolled")[0]["enrollment_id"] == enrollment["id"]

    async def test_enroll_unknown_challenge(self, challenges):
        with pytest.raises(NotFoundError):
            await challenges.enroll("user-a", 9999)

    async def test_enroll_inactive(self, challenges, make_challenge):
        challenge = await make_challenge()
        await challenges.deactivate_challenge(challenge["id"])

        with pytest.raises(InvalidStateError) as exc_info:
            await challenges.enroll("user-a", challenge["id"])
        assert exc_info.value.error_code == "INVALID_ENROLL"

    async def test_enroll_before_start(self, challenges, make_challenge, clock):
        challenge = await make_challenge(start_date=clock.now + timedelta(days=1))

        with pytest.raises(InvalidStateError):
            await challenges.enroll("user-a", challenge["id"])

    async def test_enroll_after_end(self, challenges, make_challenge, clock):
        challenge = await make_challenge(end_date=clock.now - timedelta(minutes=1))

        with pytest.raises(InvalidStateError):
            await challenges.enroll("user-a", challenge["id"])

    async def test_duplicate_enrollment(self, challenges, make_challenge):
        challenge = await make_challenge()
        await challenges.enroll("user-a", challenge["id"])

        with pytest.raises(ConflictError) as exc_info:
            await challenges.enroll("user-a", challenge["id"])
        assert exc_info.value.error_code == "ENROLLMENT_CONFLICT"

    async def test_get_user_challenges(self, challenges, make_challenge):
        first = await make_challenge(title="First")
        second = await make_challenge(title="Second", required_count=1)
        await challenges.enroll("user-a", first["id"])
        await challenges.enroll("user-a", second["id"])
        await challenges.update_progress("user-a", second["id"])

        everything = await challenges.get_user_challenges("user-a")
        completed = await challenges.get_user_challenges("user-a", "completed")

        assert len(everything) == 2
        assert [e["challenge"]["title"] for e in completed] == ["Second"]


# ============================================================================
# PROGRESS
# ============================================================================


class TestProgress:
    """Test progress and completion."""

    async def test_complete_in_one_update(self, challenges, ledger, make_challenge, events):
        """Five progress at once completes a five-step challenge without bonus."""
        challenge = await make_challenge(required_count=5, point_reward=100)
        await challenges.enroll("user-a", challenge["id"])

        result = await challenges.update_progress("user-a", challenge["id"], increment_by=5)

        assert result["status"] == "COMPLETED"
        assert result["is_completed"] is True
        assert result["completed_now"] is True
        assert result["points_earned"] == 100
        assert result["points_awarded"] == 100
        assert result["completed_at"] is not None
        assert (await ledger.get_summary("user-a"))["available_points"] == 100
        history = await ledger.get_transaction_history("user-a")
        assert history[0]["reason"] == "CHALLENGE_COMPLETE"
        assert len(events.named("challenge.completed")) == 1

    async def test_partial_progress(self, challenges, make_challenge):
        challenge = await make_challenge(required_count=3)
        await challenges.enroll("user-a", challenge["id"])

        result = await challenges.update_progress("user-a", challenge["id"])

        assert result["progress"] == 1
        assert result["status"] == "ACTIVE"
        assert result["points_awarded"] == 0

    async def test_overshoot_is_kept(self, challenges, make_challenge):
        challenge = await make_challenge(required_count=2)
        await challenges.enroll("user-a", challenge["id"])

        result = await challenges.update_progress("user-a", challenge["id"], increment_by=4)

        assert result["progress"] == 4
        assert result["is_completed"] is True

    async def test_early_completion_bonus(self, challenges, make_challenge, clock):
        challenge = await make_challenge(
            required_count=1,
            point_reward=100,
            bonus_reward=50,
            end_date=clock.now + timedelta(days=10),
        )
        await challenges.enroll("user-a", challenge["id"])

        result = await challenges.update_progress("user-a", challenge["id"])

        assert result["points_earned"] == 150

    async def test_no_bonus_close_to_end(self, challenges, make_challenge, clock):
        challenge = await make_challenge(
            required_count=1,
            point_reward=100,
            bonus_reward=50,
            end_date=clock.now + timedelta(days=3),
        )
        await challenges.enroll("user-a", challenge["id"])

        result = await challenges.update_progress("user-a", challenge["id"])

        assert result["points_earned"] == 100

    async def test_progress_after_completion_rejected(self, challenges, ledger, make_challenge):
        challenge = await make_challenge(required_count=1)
        await challenges.enroll("user-a", challenge["id"])
        await challenges.update_progress("user-a", challenge["id"])

        with pytest.raises(InvalidStateError):
            await challenges.update_progress("user-a", challenge["id"])

        assert (await ledger.get_summary("user-a"))["available_points"] == 100

    async def test_progress_without_enrollment(self, challenges, make_challenge):
        challenge = await make_challenge()

        with pytest.raises(NotFoundError) as exc_info:
            await challenges.update_progress("user-a", challenge["id"])
        assert exc_info.value.error_code == "ENROLLMENT_NOT_FOUND"

    async def test_non_positive_increment(self, challenges, make_challenge):
        challenge = await make_challenge()
        await challenges.enroll("user-a", challenge["id"])

        with pytest.raises(ValidationError):
            await challenges.update_progress("user-a", challenge["id"], increment_by=0)

    async def test_zero_reward_completion(self, challenges, ledger, make_challenge, events):
        challenge = await make_challenge(required_count=1, point_reward=0)
        await challenges.enroll("user-a", challenge["id"])

        result = await challenges.update_progress("user-a", challenge["id"])

        assert result["is_completed"] is True
        assert result["points_earned"] == 0
        assert await ledger.get_transaction_history("user-a") == []
        assert events.named("points.balance_changed") == []


# ============================================================================
# ACTIVITY ROUTING
# ============================================================================


class TestTrackActivity:
    """Test activity -> enrollment routing."""

    async def test_meditation_session_advances_two_categories(self, challenges, make_challenge):
        meditation = await make_challenge(title="Med", category=ChallengeCategory.MEDITATION)
        wellness = await make_challenge(title="Well", category=ChallengeCategory.WELLNESS)
        journal = await make_challenge(title="Jour", category=ChallengeCategory.JOURNALING)
        for challenge in (meditation, wellness, journal):
            await challenges.enroll("user-a", challenge["id"])

        updates = await challenges.track_activity(
            "user-a", ActivityType.SESSION_COMPLETE, {"session_type": "MEDITATION"}
        )

        assert {u["challenge_id"] for u in updates} == {meditation["id"], wellness["id"]}
        assert all(u["progress"] == 1 for u in updates)

    async def test_non_matching_activity(self, challenges, make_challenge):
        challenge = await make_challenge(category=ChallengeCategory.SOCIAL)
        await challenges.enroll("user-a", challenge["id"])

        assert await challenges.track_activity("user-a", ActivityType.JOURNAL_ENTRY) == []

    async def test_completed_enrollments_are_skipped(self, challenges, make_challenge):
        challenge = await make_challenge(category=ChallengeCategory.SOCIAL, required_count=1)
        await challenges.enroll("user-a", challenge["id"])

        first = await challenges.track_activity("user-a", ActivityType.POST_LIKE)
        second = await challenges.track_activity("user-a", ActivityType.POST_LIKE)

        assert first[0]["completed_now"] is True
        assert second == []


# ============================================================================
# EXPIRY
# ============================================================================


class TestExpiry:
    """Test the expiry sweep."""

    async def test_sweep_expires_overdue_enrollments(self, challenges, make_challenge, clock, events):
        ending = await make_challenge(title="Ending", end_date=clock.now + timedelta(days=1))
        open_ended = await make_challenge(title="Open")
        await challenges.enroll("user-a", ending["id"])
        await challenges.enroll("user-a", open_ended["id"])
        clock.advance(days=2)

        assert await challenges.expire_sweep() == 1
        assert await challenges.expire_sweep() == 0

        with pytest.raises(InvalidStateError):
            await challenges.update_progress("user-a", ending["id"])
        assert (await challenges.update_progress("user-a", open_ended["id"]))["progress"] == 1
        assert events.named("challenge.expired")[0]["count"] == 1

    async def test_completed_enrollments_do_not_expire(self, challenges, make_challenge, clock):
        challenge = await make_challenge(required_count=1, end_date=clock.now + timedelta(days=1))
        await challenges.enroll("user-a", challenge["id"])
        await challenges.update_progress("user-a", challenge["id"])
        clock.advance(days=2)

        assert await challenges.expire_sweep() == 0


# ============================================================================
# STATS
# ============================================================================


class TestChallengeStats:
    """Test leaderboard and statistics."""

    async def test_stats(self, challenges, make_challenge):
        challenge = await make_challenge(required_count=1)
        for user in ("user-a", "user-b", "user-c"):
            await challenges.enroll(user, challenge["id"])
        await challenges.update_progress("user-a", challenge["id"])

        stats = await challenges.get_challenge_stats(challenge["id"])

        assert stats == {
            "challenge_id": challenge["id"],
            "total_enrolled": 3,
            "active": 2,
            "completed": 1,
            "expired": 0,
            "completion_rate": 33.33,
        }

    async def test_stats_without_enrollments(self, challenges, make_challenge):
        challenge = await make_challenge()

        stats = await challenges.get_challenge_stats(challenge["id"])

        assert stats["completion_rate"] == 0.0

    async def test_leaderboard_first_finisher_first(self, challenges, make_challenge, clock):
        challenge = await make_challenge(required_count=1)
        for user in ("user-a", "user-b", "user-c"):
            await challenges.enroll(user, challenge["id"])
        await challenges.update_progress("user-b", challenge["id"])
        clock.advance(minutes=5)
        await challenges.update_progress("user-a", challenge["id"])

        board = await challenges.get_challenge_leaderboard(challenge["id"])

        assert [(row["user_id"], row["rank"]) for row in board] == [("user-b", 1), ("user-a", 2)]

    async def test_leaderboard_unknown_challenge(self, challenges):
        with pytest.raises(NotFoundError):
            await challenges.get_challenge_leaderboard(9999)
