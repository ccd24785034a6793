"""
ChallengeService - Challenge templates and enrollment state machine
====================================================================

Handles:
- Challenge template creation, reads, deactivation and default seeding
- Enrollment (one per user and challenge)
- Progress updates with an exactly-once ACTIVE -> COMPLETED transition
- Routing inbound activities to matching enrollments
- Expiry sweeps moving overdue ACTIVE enrollments to EXPIRED
- Challenge leaderboards and statistics

State machine
-------------
    ACTIVE --(progress >= required_count)--> COMPLETED
    ACTIVE --(template end_date passed)----> EXPIRED

Both transitions are `UPDATE ... WHERE status = 'ACTIVE'`; only the writer
that sees rowcount 1 owns the transition, so the completion reward is paid
once even when several progress updates race past `required_count`.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import IntegrityError

from progression.core.database.base import utc_now
from progression.core.logging.logger import get_logger
from progression.core.validation.input_validator import InputValidator
from progression.database.models import ChallengeEnrollment, ChallengeTemplate
from progression.database.models.enums import (
    ActivityType,
    ChallengeCategory,
    ChallengeType,
    Difficulty,
    EnrollmentStatus,
    TransactionReason,
)
from progression.modules.challenge import activity_rules
from progression.modules.challenge.catalog import DEFAULT_CHALLENGES
from progression.modules.shared.base_repository import BaseRepository
from progression.modules.shared.base_service import BaseService
from progression.modules.shared.constants import (
    CHALLENGE_LEADERBOARD_LIMIT,
    EARLY_COMPLETION_DAYS,
    LEADERBOARD_MAX_LIMIT,
)
from progression.modules.shared.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ProgressionDomainException,
)
from progression.modules.shared.formulas import challenge_completion_reward, completion_rate
from progression.modules.shared.validators import (
    validate_date_window,
    validate_pagination,
    validate_text,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from progression.core.config.manager import ConfigManager
    from progression.core.database.service import DatabaseService
    from progression.core.event.bus import EventBus
    from progression.modules.points.service import LedgerEntry, PointsLedgerService


class ChallengeTemplateRepository(BaseRepository[ChallengeTemplate]):
    pass


class EnrollmentRepository(BaseRepository[ChallengeEnrollment]):
    pass


def challenge_view(template: ChallengeTemplate) -> Dict[str, Any]:
    return {
        "id": template.id,
        "title": template.title,
        "description": template.description,
        "icon": template.icon,
        "type": template.challenge_type.value,
        "category": template.category.value,
        "difficulty": template.difficulty.value,
        "required_count": template.required_count,
        "point_reward": template.point_reward,
        "bonus_reward": template.bonus_reward,
        "start_date": template.start_date,
        "end_date": template.end_date,
        "is_active": template.is_active,
        "created_at": template.created_at,
    }


def enrollment_view(
    enrollment: ChallengeEnrollment, template: Optional[ChallengeTemplate] = None
) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "id": enrollment.id,
        "user_id": enrollment.user_id,
        "challenge_id": enrollment.challenge_id,
        "status": enrollment.status.value,
        "progress": enrollment.progress,
        "points_earned": enrollment.points_earned,
        "completed_at": enrollment.completed_at,
        "created_at": enrollment.created_at,
    }
    if template is not None:
        view["challenge"] = challenge_view(template)
    return view


# Declaration order of ChallengeType, used for "ORDER BY type"
_TYPE_ORDER = {member: index for index, member in enumerate(ChallengeType)}


class ChallengeService(BaseService):
    """
    Challenge engine.

    Business Logic:
    - Enroll only into active templates inside their date window
    - Progress only moves while ACTIVE
    - Completion reward = point_reward, plus bonus_reward when the template
      has an end_date and more than `challenges.early_completion_days`
      days remain
    - Expired enrollments earn nothing
    """

    def __init__(
        self,
        database: DatabaseService,
        ledger: PointsLedgerService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._db = database
        self._ledger = ledger
        self._clock = clock
        self._templates = ChallengeTemplateRepository(
            ChallengeTemplate, get_logger(f"{__name__}.ChallengeTemplateRepository")
        )
        self._enrollments = EnrollmentRepository(
            ChallengeEnrollment, get_logger(f"{__name__}.EnrollmentRepository")
        )

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def _build_template(self, data: Mapping[str, Any]) -> ChallengeTemplate:
        validate_text(data.get("title"), "title", max_length=200)
        validate_text(data.get("description"), "description", required=False, max_length=2000)
        start_date = data.get("start_date")
        end_date = data.get("end_date")
        validate_date_window(start_date, end_date)

        bonus = data.get("bonus_reward")
        return ChallengeTemplate(
            title=InputValidator.validate_string(data["title"], "title", max_length=200),
            description=data.get("description") or "",
            icon=InputValidator.validate_optional_string(data.get("icon"), "icon", max_length=16),
            challenge_type=InputValidator.validate_enum(
                data.get("challenge_type", data.get("type")), ChallengeType, "type"
            ),
            category=InputValidator.validate_enum(
                data.get("category"), ChallengeCategory, "category"
            ),
            difficulty=InputValidator.validate_enum(
                data.get("difficulty", Difficulty.MEDIUM), Difficulty, "difficulty"
            ),
            required_count=InputValidator.validate_positive_integer(
                data.get("required_count"), "required_count"
            ),
            point_reward=InputValidator.validate_non_negative_integer(
                data.get("point_reward"), "point_reward"
            ),
            bonus_reward=None
            if bonus is None
            else InputValidator.validate_non_negative_integer(bonus, "bonus_reward"),
            start_date=start_date,
            end_date=end_date,
            is_active=True,
        )

    async def create_challenge(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Create a challenge template.

        Args:
            data: title, description, type, category, required_count,
                point_reward and optionally bonus_reward, difficulty, icon,
                start_date, end_date

        Raises:
            ValidationError: Missing or malformed fields
        """
        template = self._build_template(data)
        async with self._db.get_transaction() as session:
            self._templates.add(session, template)
            await self._templates.flush(session)
            view = challenge_view(template)

        await self.emit_event(
            "challenge.created",
            {"challenge_id": view["id"], "title": view["title"], "type": view["type"]},
        )
        self.log_operation("create_challenge", challenge_id=view["id"], title=view["title"])
        return view

    async def get_challenge_by_id(self, challenge_id: int) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Unknown challenge
        """
        challenge_id = InputValidator.validate_entity_id(challenge_id, "challenge_id")
        async with self._db.get_session() as session:
            template = await self._templates.get(session, challenge_id)
        if template is None:
            raise NotFoundError("Challenge", challenge_id)
        return challenge_view(template)

    async def get_active_challenges(
        self, category: Optional[ChallengeCategory | str] = None
    ) -> List[Dict[str, Any]]:
        """Active templates that have started, by type then newest."""
        now = self._clock()
        conditions = [
            ChallengeTemplate.is_active.is_(True),
            or_(ChallengeTemplate.start_date.is_(None), ChallengeTemplate.start_date <= now),
        ]
        if category is not None:
            category = InputValidator.validate_enum(category, ChallengeCategory, "category")
            conditions.append(ChallengeTemplate.category == category)

        async with self._db.get_session() as session:
            templates = await self._templates.find_many_where(
                session,
                *conditions,
                order_by=[
                    case(_TYPE_ORDER, value=ChallengeTemplate.challenge_type),
                    ChallengeTemplate.created_at.desc(),
                    ChallengeTemplate.id.desc(),
                ],
            )
        return [challenge_view(t) for t in templates]

    async def deactivate_challenge(self, challenge_id: int) -> Dict[str, Any]:
        """
        Hide a template from enrollment. Existing enrollments are untouched.

        Raises:
            NotFoundError: Unknown challenge
        """
        challenge_id = InputValidator.validate_entity_id(challenge_id, "challenge_id")
        async with self._db.get_transaction() as session:
            updated = await self._templates.update_where(
                session,
                ChallengeTemplate.id == challenge_id,
                values={"is_active": False},
            )
            if updated == 0:
                raise NotFoundError("Challenge", challenge_id)
            template = await self._templates.get(session, challenge_id)
            await self._templates.refresh(session, template)
            view = challenge_view(template)

        self.log_operation("deactivate_challenge", challenge_id=challenge_id)
        return view

    async def seed_challenges(self) -> List[Dict[str, Any]]:
        """Install the default templates that are not present yet (by title)."""
        created: List[Dict[str, Any]] = []
        async with self._db.get_transaction() as session:
            for data in DEFAULT_CHALLENGES:
                exists = await self._templates.exists(
                    session, ChallengeTemplate.title == data["title"]
                )
                if exists:
                    continue
                template = self._build_template(data)
                self._templates.add(session, template)
                await self._templates.flush(session)
                created.append(challenge_view(template))

        for view in created:
            await self.emit_event(
                "challenge.created",
                {"challenge_id": view["id"], "title": view["title"], "type": view["type"]},
            )
        self.log_operation("seed_challenges", created_count=len(created))
        return created

    # -------------------------------------------------------------------------
    # Enrollment
    # -------------------------------------------------------------------------

    async def enroll(self, user_id: str, challenge_id: int) -> Dict[str, Any]:
        """
        Enroll a user; the account is created if absent.

        Raises:
            NotFoundError: Unknown challenge
            InvalidStateError: Template inactive, not started or ended
            ConflictError: Already enrolled
        """
        user_id = InputValidator.validate_user_id(user_id)
        challenge_id = InputValidator.validate_entity_id(challenge_id, "challenge_id")
        now = self._clock()
        conflict = ConflictError(
            "Enrollment", f"{user_id}:{challenge_id}", "Already enrolled in this challenge"
        )

        try:
            async with self._db.get_transaction() as session:
                template = await self._templates.get(session, challenge_id)
                if template is None:
                    raise NotFoundError("Challenge", challenge_id)
                if not template.is_active:
                    raise InvalidStateError("enroll", "Challenge is inactive")
                if template.start_date is not None and template.start_date > now:
                    raise InvalidStateError("enroll", "Challenge has not started yet")
                if template.end_date is not None and template.end_date < now:
                    raise InvalidStateError("enroll", "Challenge has ended")

                if await self._enrollments.exists(
                    session,
                    ChallengeEnrollment.user_id == user_id,
                    ChallengeEnrollment.challenge_id == challenge_id,
                ):
                    raise conflict

                account = await self._ledger.get_or_create_account(session, user_id)
                enrollment = ChallengeEnrollment(
                    user_id=user_id,
                    challenge_id=challenge_id,
                    account_id=account.id,
                    status=EnrollmentStatus.ACTIVE,
                    progress=0,
                    points_earned=0,
                )
                try:
                    async with session.begin_nested():
                        self._enrollments.add(session, enrollment)
                        await self._enrollments.flush(session)
                except IntegrityError as exc:
                    raise conflict from exc

                view = enrollment_view(enrollment, template)
        except ProgressionDomainException as exc:
            self.log.info(
                f"enroll rejected: {exc.message}",
                extra={"user_id": user_id, "challenge_id": challenge_id, "error_code": exc.error_code},
            )
            raise

        await self.emit_event(
            "challenge.enrolled",
            {"user_id": user_id, "challenge_id": challenge_id, "enrollment_id": view["id"]},
        )
        self.log_operation("enroll", user_id=user_id, challenge_id=challenge_id)
        return view

    async def get_user_challenges(
        self, user_id: str, status: Optional[EnrollmentStatus | str] = None
    ) -> List[Dict[str, Any]]:
        """A user's enrollments with their templates, newest first."""
        user_id = InputValidator.validate_user_id(user_id)
        conditions = [ChallengeEnrollment.user_id == user_id]
        if status is not None:
            status = InputValidator.validate_enum(status, EnrollmentStatus, "status")
            conditions.append(ChallengeEnrollment.status == status)

        async with self._db.get_session() as session:
            enrollments = await self._enrollments.find_many_where(
                session,
                *conditions,
                eager_load=[ChallengeEnrollment.challenge],
                order_by=[ChallengeEnrollment.created_at.desc(), ChallengeEnrollment.id.desc()],
            )
        return [enrollment_view(e, e.challenge) for e in enrollments]

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    async def _advance(
        self,
        session: AsyncSession,
        user_id: str,
        challenge_id: int,
        increment_by: int,
        now: datetime,
    ) -> Tuple[ChallengeEnrollment, ChallengeTemplate, Optional[LedgerEntry], bool]:
        """
        Apply one progress increment inside the caller's transaction.

        Returns:
            (enrollment, template, ledger entry or None, whether this call
            performed the ACTIVE -> COMPLETED transition)
        """
        enrollment = await self._enrollments.find_one_where(
            session,
            ChallengeEnrollment.user_id == user_id,
            ChallengeEnrollment.challenge_id == challenge_id,
            for_update=True,
        )
        if enrollment is None:
            raise NotFoundError("Enrollment", f"{user_id}:{challenge_id}")
        if enrollment.status is not EnrollmentStatus.ACTIVE:
            raise InvalidStateError(
                "update_progress", f"Enrollment is {enrollment.status.value}, not ACTIVE"
            )

        updated = await self._enrollments.update_where(
            session,
            ChallengeEnrollment.id == enrollment.id,
            ChallengeEnrollment.status == EnrollmentStatus.ACTIVE,
            values={"progress": ChallengeEnrollment.progress + increment_by},
        )
        if updated == 0:
            raise InvalidStateError("update_progress", "Enrollment is no longer ACTIVE")
        await self._enrollments.refresh(session, enrollment)

        template = await self._templates.get(session, challenge_id)
        if template is None:
            raise NotFoundError("Challenge", challenge_id)

        if enrollment.progress < template.required_count:
            return enrollment, template, None, False

        won = await self._enrollments.update_where(
            session,
            ChallengeEnrollment.id == enrollment.id,
            ChallengeEnrollment.status == EnrollmentStatus.ACTIVE,
            values={"status": EnrollmentStatus.COMPLETED, "completed_at": now},
        )
        if won == 0:
            # Another writer completed or expired it; it owns the transition
            await self._enrollments.refresh(session, enrollment)
            return enrollment, template, None, False

        early_days = int(
            self.get_config("challenges.early_completion_days", EARLY_COMPLETION_DAYS)
        )
        reward = challenge_completion_reward(
            template.point_reward, template.bonus_reward, template.end_date, now, early_days
        )

        entry: Optional[LedgerEntry] = None
        if reward > 0:
            entry = await self._ledger.credit(
                session,
                user_id,
                reward,
                TransactionReason.CHALLENGE_COMPLETE,
                description=f"Completed challenge: {template.title}",
                metadata={
                    "challenge_id": template.id,
                    "challenge_title": template.title,
                    "difficulty": template.difficulty.value,
                },
            )
        await self._enrollments.update_where(
            session,
            ChallengeEnrollment.id == enrollment.id,
            values={"points_earned": reward},
        )
        await self._enrollments.refresh(session, enrollment)
        return enrollment, template, entry, True

    async def update_progress(
        self, user_id: str, challenge_id: int, increment_by: int = 1
    ) -> Dict[str, Any]:
        """
        Add progress to an ACTIVE enrollment, completing it at required_count.

        Returns:
            Enrollment view plus `is_completed` and `points_awarded`
            (non-zero only for the call that performed the completion)

        Raises:
            NotFoundError: Not enrolled
            InvalidStateError: Enrollment is COMPLETED or EXPIRED
        """
        user_id = InputValidator.validate_user_id(user_id)
        challenge_id = InputValidator.validate_entity_id(challenge_id, "challenge_id")
        self.validate_positive_int(increment_by, "increment_by")
        now = self._clock()

        try:
            async with self._db.get_transaction() as session:
                enrollment, template, entry, completed_now = await self._advance(
                    session, user_id, challenge_id, increment_by, now
                )
                view = enrollment_view(enrollment, template)
        except ProgressionDomainException as exc:
            self.log.info(
                f"update_progress rejected: {exc.message}",
                extra={"user_id": user_id, "challenge_id": challenge_id, "error_code": exc.error_code},
            )
            raise
        except Exception as exc:
            self.log_error("update_progress", exc, user_id=user_id, challenge_id=challenge_id)
            raise

        await self.emit_event(
            "challenge.progressed",
            {
                "user_id": user_id,
                "challenge_id": challenge_id,
                "enrollment_id": view["id"],
                "progress": view["progress"],
                "required_count": template.required_count,
            },
        )
        if completed_now:
            if entry is not None:
                await self._ledger.publish_balance_change(entry)
            await self.emit_event(
                "challenge.completed",
                {
                    "user_id": user_id,
                    "challenge_id": challenge_id,
                    "enrollment_id": view["id"],
                    "points_earned": view["points_earned"],
                },
            )
            self.log_operation(
                "complete_challenge",
                user_id=user_id,
                challenge_id=challenge_id,
                points_earned=view["points_earned"],
            )

        return {
            **view,
            "is_completed": view["status"] == EnrollmentStatus.COMPLETED.value,
            "completed_now": completed_now,
            "points_awarded": view["points_earned"] if completed_now else 0,
        }

    async def track_activity(
        self,
        user_id: str,
        activity_type: ActivityType | str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Advance every ACTIVE enrollment whose category matches the activity.

        Each enrollment is advanced in its own transaction. One that left
        ACTIVE after it was listed is skipped.

        Returns:
            Progress results of the updated enrollments
        """
        user_id = InputValidator.validate_user_id(user_id)
        activity = InputValidator.validate_enum(activity_type, ActivityType, "activity_type")
        metadata = InputValidator.validate_metadata(metadata) or {}

        async with self._db.get_session() as session:
            enrollments = await self._enrollments.find_many_where(
                session,
                ChallengeEnrollment.user_id == user_id,
                ChallengeEnrollment.status == EnrollmentStatus.ACTIVE,
                eager_load=[ChallengeEnrollment.challenge],
                order_by=[ChallengeEnrollment.id.asc()],
            )
            targets = [
                e.challenge_id
                for e in enrollments
                if activity_rules.matches(e.challenge.category, activity, metadata)
            ]

        updates: List[Dict[str, Any]] = []
        for challenge_id in targets:
            try:
                updates.append(await self.update_progress(user_id, challenge_id, 1))
            except InvalidStateError as exc:
                self.log.debug(
                    "Skipped enrollment that left ACTIVE",
                    extra={"user_id": user_id, "challenge_id": challenge_id, "reason": exc.reason},
                )

        self.log_operation(
            "track_activity",
            user_id=user_id,
            activity_type=activity.value,
            updated=len(updates),
        )
        return updates

    # -------------------------------------------------------------------------
    # Expiry
    # -------------------------------------------------------------------------

    async def expire_sweep(self) -> int:
        """
        Move ACTIVE enrollments of ended templates to EXPIRED.

        One guarded UPDATE; re-running only touches rows still ACTIVE.

        Returns:
            Number of enrollments expired
        """
        now = self._clock()
        ended = select(ChallengeTemplate.id).where(
            ChallengeTemplate.end_date.is_not(None),
            ChallengeTemplate.end_date < now,
        )
        async with self._db.get_transaction() as session:
            expired = await self._enrollments.update_where(
                session,
                ChallengeEnrollment.status == EnrollmentStatus.ACTIVE,
                ChallengeEnrollment.challenge_id.in_(ended),
                values={"status": EnrollmentStatus.EXPIRED},
            )

        if expired:
            await self.emit_event("challenge.expired", {"count": expired, "swept_at": now})
            self.log_operation("expire_sweep", expired=expired)
        else:
            self.log.debug("Expiry sweep found nothing to expire")
        return expired

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    async def get_challenge_leaderboard(
        self, challenge_id: int, limit: int = CHALLENGE_LEADERBOARD_LIMIT
    ) -> List[Dict[str, Any]]:
        """COMPLETED enrollments, first finisher first."""
        challenge_id = InputValidator.validate_entity_id(challenge_id, "challenge_id")
        limit, _ = validate_pagination(limit, 0, LEADERBOARD_MAX_LIMIT)
        async with self._db.get_session() as session:
            if not await self._templates.exists(session, ChallengeTemplate.id == challenge_id):
                raise NotFoundError("Challenge", challenge_id)
            enrollments = await self._enrollments.find_many_where(
                session,
                ChallengeEnrollment.challenge_id == challenge_id,
                ChallengeEnrollment.status == EnrollmentStatus.COMPLETED,
                order_by=[ChallengeEnrollment.completed_at.asc(), ChallengeEnrollment.id.asc()],
                limit=limit,
            )
        return [
            {**enrollment_view(e), "rank": position}
            for position, e in enumerate(enrollments, start=1)
        ]

    async def get_challenge_stats(self, challenge_id: int) -> Dict[str, Any]:
        """Enrollment counts by status and the completion percentage."""
        challenge_id = InputValidator.validate_entity_id(challenge_id, "challenge_id")
        async with self._db.get_session() as session:
            if not await self._templates.exists(session, ChallengeTemplate.id == challenge_id):
                raise NotFoundError("Challenge", challenge_id)
            result = await session.execute(
                select(ChallengeEnrollment.status, func.count())
                .where(ChallengeEnrollment.challenge_id == challenge_id)
                .group_by(ChallengeEnrollment.status)
            )
            counts = {status: count for status, count in result.all()}

        by_status = {status: int(counts.get(status, 0)) for status in EnrollmentStatus}
        total = sum(by_status.values())
        completed = by_status[EnrollmentStatus.COMPLETED]
        return {
            "challenge_id": challenge_id,
            "total_enrolled": total,
            "active": by_status[EnrollmentStatus.ACTIVE],
            "completed": completed,
            "expired": by_status[EnrollmentStatus.EXPIRED],
            "completion_rate": round(completion_rate(completed, total), 2),
        }
