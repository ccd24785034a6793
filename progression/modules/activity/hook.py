"""
Activity Hook - Inbound activity translation

Purpose
-------
Single entry point other subsystems call when a user does something that
earns points (finishes a session, writes a journal entry, posts in the
community, checks in for the day). The hook awards the activity points and
advances matching challenges.

Responsibilities
----------------
- Award activity points through PointsLedgerService
- Advance matching enrollments through ChallengeService.track_activity
- Route daily check-ins through StreakService
- Isolate failures: errors are logged and reported in the result

Non-Responsibilities
--------------------
- Deciding point amounts (activity reward table in config)
- Deciding which challenges an activity advances (activity_rules)

Architecture Notes
------------------
- The caller's own flow (saving the session, the post, ...) must never fail
  because progression did; nothing here raises except cancellation
- Points and challenge progress are separate transactions; a failure in
  one does not undo the other, and the result says which step failed

Example Usage
-------------
>>> hook = ActivityHook(ledger, challenges, streaks)
>>> result = await hook.on_session_complete("user-1", session_id=42, session_type="MEDITATION")
>>> result["points_awarded"], result["errors"]
(50, [])
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from progression.core.logging.logger import LogContext, get_logger
from progression.database.models.enums import ActivityType
from progression.modules.shared.exceptions import ProgressionDomainException

if TYPE_CHECKING:
    from progression.modules.challenge.service import ChallengeService
    from progression.modules.points.service import PointsLedgerService
    from progression.modules.streak.service import StreakService

logger = get_logger(__name__)


def _failure(step: str, exc: Exception) -> Dict[str, Any]:
    failure: Dict[str, Any] = {
        "step": step,
        "error_type": type(exc).__name__,
        "message": str(exc),
    }
    if isinstance(exc, ProgressionDomainException):
        failure["error_code"] = exc.error_code
    return failure


def _compact(**values: Any) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


class ActivityHook:
    """
    Error-isolating facade over the ledger, challenge and streak services.

    Every method returns a result dict:
        user_id, activity_type, points_awarded, account, challenge_updates,
        completed_challenges, errors
    """

    def __init__(
        self,
        ledger: PointsLedgerService,
        challenges: ChallengeService,
        streaks: StreakService,
    ) -> None:
        self._ledger = ledger
        self._challenges = challenges
        self._streaks = streaks

    def _report(self, step: str, user_id: str, activity: str, exc: Exception) -> Dict[str, Any]:
        if isinstance(exc, ProgressionDomainException):
            logger.warning(
                f"Activity hook step rejected: {step}",
                extra={
                    "user_id": user_id,
                    "activity_type": activity,
                    "step": step,
                    "error_code": exc.error_code,
                    "error": exc.message,
                },
            )
        else:
            logger.error(
                f"Activity hook step failed: {step}",
                extra={
                    "user_id": user_id,
                    "activity_type": activity,
                    "step": step,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
        return _failure(step, exc)

    async def _track(
        self,
        user_id: str,
        activity: str,
        metadata: Optional[Mapping[str, Any]],
        result: Dict[str, Any],
    ) -> None:
        try:
            updates = await self._challenges.track_activity(user_id, activity, metadata)
        except Exception as exc:
            result["errors"].append(self._report("track_activity", user_id, activity, exc))
            return
        result["challenge_updates"] = updates
        result["completed_challenges"] = [u for u in updates if u["completed_now"]]

    def _new_result(self, user_id: str, activity: str) -> Dict[str, Any]:
        return {
            "user_id": user_id,
            "activity_type": activity,
            "points_awarded": 0,
            "account": None,
            "challenge_updates": [],
            "completed_challenges": [],
            "errors": [],
        }

    async def record(
        self,
        user_id: str,
        activity_type: ActivityType | str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Award points for an activity and advance matching challenges.

        DAILY_CHECKIN is handed to `on_daily_checkin` so a day is credited
        once, through the streak. Never raises for domain or infrastructure
        failures; see `errors`.
        """
        if isinstance(activity_type, ActivityType):
            activity = activity_type.value
        else:
            activity = str(activity_type)
        if activity == ActivityType.DAILY_CHECKIN.value:
            return await self.on_daily_checkin(user_id)
        result = self._new_result(user_id, activity)

        async with LogContext(user_id=user_id, component="activity_hook", operation=activity):
            try:
                _, points, _ = self._ledger.activity_reward(activity)
                account = await self._ledger.award_activity_points(user_id, activity, metadata)
            except Exception as exc:
                result["errors"].append(self._report("award_points", user_id, activity, exc))
            else:
                result["account"] = account
                result["points_awarded"] = points

            await self._track(user_id, activity, metadata, result)

        logger.info(
            "Activity recorded",
            extra={
                "user_id": user_id,
                "activity_type": activity,
                "points_awarded": result["points_awarded"],
                "challenges_updated": len(result["challenge_updates"]),
                "errors": len(result["errors"]),
            },
        )
        return result

    # ========================================================================
    # Per-activity helpers
    # ========================================================================

    async def on_session_complete(
        self,
        user_id: str,
        session_id: Any,
        session_type: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self.record(
            user_id,
            ActivityType.SESSION_COMPLETE,
            _compact(session_id=session_id, session_type=session_type, duration=duration),
        )

    async def on_journal_entry(
        self, user_id: str, entry_id: Any, content_length: Optional[int] = None
    ) -> Dict[str, Any]:
        return await self.record(
            user_id,
            ActivityType.JOURNAL_ENTRY,
            _compact(entry_id=entry_id, entry_length=content_length),
        )

    async def on_mood_checkin(
        self, user_id: str, mood_id: Any, mood: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.record(
            user_id, ActivityType.MOOD_CHECKIN, _compact(mood_id=mood_id, mood=mood)
        )

    async def on_gratitude_entry(self, user_id: str, entry_id: Any) -> Dict[str, Any]:
        return await self.record(
            user_id, ActivityType.GRATITUDE_ENTRY, _compact(entry_id=entry_id)
        )

    async def on_community_post(
        self, user_id: str, post_id: Any, category: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.record(
            user_id, ActivityType.COMMUNITY_POST, _compact(post_id=post_id, category=category)
        )

    async def on_community_comment(
        self, user_id: str, comment_id: Any, post_id: Any = None
    ) -> Dict[str, Any]:
        return await self.record(
            user_id,
            ActivityType.COMMUNITY_COMMENT,
            _compact(comment_id=comment_id, post_id=post_id),
        )

    async def on_post_like(self, user_id: str, post_id: Any) -> Dict[str, Any]:
        return await self.record(user_id, ActivityType.POST_LIKE, _compact(post_id=post_id))

    async def on_program_enrollment(
        self, user_id: str, program_id: Any, program_name: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.record(
            user_id,
            ActivityType.PROGRAM_ENROLLMENT,
            _compact(program_id=program_id, program_name=program_name),
        )

    async def on_achievement_unlock(
        self, user_id: str, achievement_id: Any, achievement_name: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self.record(
            user_id,
            ActivityType.ACHIEVEMENT_UNLOCK,
            _compact(achievement_id=achievement_id, achievement_name=achievement_name),
        )

    async def on_event_registration(self, user_id: str, event_id: Any) -> Dict[str, Any]:
        return await self.record(
            user_id, ActivityType.EVENT_REGISTRATION, _compact(event_id=event_id)
        )

    async def on_event_attendance(self, user_id: str, event_id: Any) -> Dict[str, Any]:
        return await self.record(
            user_id, ActivityType.EVENT_ATTENDANCE, _compact(event_id=event_id)
        )

    async def on_daily_checkin(self, user_id: str) -> Dict[str, Any]:
        """
        Daily check-in: streak points come from StreakService, not the
        activity table. STREAKS challenges advance once per calendar day.
        """
        activity = ActivityType.DAILY_CHECKIN.value
        result = self._new_result(user_id, activity)

        async with LogContext(user_id=user_id, component="activity_hook", operation=activity):
            try:
                check_in = await self._streaks.check_in(user_id)
            except Exception as exc:
                result["errors"].append(self._report("check_in", user_id, activity, exc))
                return result

            result["points_awarded"] = check_in["points_earned"]
            result["check_in"] = check_in
            if not check_in["already_checked_in"]:
                await self._track(user_id, activity, None, result)

        logger.info(
            "Daily check-in recorded",
            extra={
                "user_id": user_id,
                "streak": check_in["streak"],
                "points_awarded": result["points_awarded"],
                "errors": len(result["errors"]),
            },
        )
        return result
