"""
StreakService - Daily check-ins and streak milestones
=====================================================

Handles:
- Calendar-day check-ins with milestone bonuses
- Streak freezes bought with points
- Streak reads (current state, history, streak leaderboard)

Day model
---------
A "day" is a calendar date in the configured `streaks.timezone` (UTC by
default). Both `check_in` and `needs_check_in` use it:
- same date as the last check-in: already checked in
- previous date: the streak continues
- anything older: the streak restarts at 1

Concurrency
-----------
The account row is locked (`SELECT ... FOR UPDATE` on PostgreSQL, the
`BEGIN IMMEDIATE` write lock on SQLite) before the last check-in is read,
so two concurrent check-ins on the same day award points once.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from progression.core.database.base import utc_now
from progression.core.logging.logger import get_logger
from progression.core.validation.input_validator import InputValidator
from progression.database.models import Account, StreakRecord
from progression.database.models.enums import TransactionReason
from progression.modules.points.service import account_summary
from progression.modules.shared.base_repository import BaseRepository
from progression.modules.shared.base_service import BaseService
from progression.modules.shared.constants import (
    LEADERBOARD_DEFAULT_LIMIT,
    LEADERBOARD_MAX_LIMIT,
    STREAK_BASE_POINTS,
    STREAK_FREEZE_COST,
    STREAK_MILESTONES,
    STREAK_TIMEZONE,
)
from progression.modules.shared.exceptions import NotFoundError, ProgressionDomainException
from progression.modules.shared.formulas import (
    achieved_milestones,
    day_gap,
    next_streak_milestone,
    streak_bonus,
)
from progression.modules.shared.validators import validate_pagination

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from progression.core.config.manager import ConfigManager
    from progression.core.database.service import DatabaseService
    from progression.core.event.bus import EventBus
    from progression.modules.points.service import PointsLedgerService


class StreakRecordRepository(BaseRepository[StreakRecord]):
    pass


class StreakAccountRepository(BaseRepository[Account]):
    pass


def streak_record_view(record: StreakRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "user_id": record.user_id,
        "streak_count": record.streak_count,
        "streak_start_date": record.streak_start_date,
        "last_check_in_date": record.last_check_in_date,
        "bonus_points_accrued": record.bonus_points_accrued,
        "milestones_achieved": list(record.milestones_achieved or []),
        "is_broken": record.is_broken,
    }


class StreakService(BaseService):
    """
    Streak tracker.

    Business Logic:
    - Base points on every counted check-in, plus a one-time bonus on the
      exact day the streak reaches a milestone
    - At most one open StreakRecord per user; a reset closes it
    - A freeze costs points and moves the last check-in to now without
      counting a day
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
        self._records = StreakRecordRepository(
            StreakRecord, get_logger(f"{__name__}.StreakRecordRepository")
        )
        self._accounts = StreakAccountRepository(
            Account, get_logger(f"{__name__}.StreakAccountRepository")
        )

    # -------------------------------------------------------------------------
    # Config
    # -------------------------------------------------------------------------

    def _milestones(self) -> Dict[int, int]:
        configured: Mapping[Any, Any] = self.get_config("streaks.milestones", None) or STREAK_MILESTONES
        return {int(days): int(bonus) for days, bonus in configured.items()}

    def _zone(self) -> tzinfo:
        name = str(self.get_config("streaks.timezone", STREAK_TIMEZONE))
        if name.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(name)

    # -------------------------------------------------------------------------
    # Core Operations
    # -------------------------------------------------------------------------

    async def check_in(self, user_id: str) -> Dict[str, Any]:
        """
        Record today's check-in.

        Returns:
            Dict with streak, points_earned, streak_bonus, next_milestone and
            already_checked_in
        """
        user_id = InputValidator.validate_user_id(user_id)
        milestones = self._milestones()
        zone = self._zone()
        base_points = int(self.get_config("streaks.base_points", STREAK_BASE_POINTS))
        now = self._clock()

        try:
            async with self._db.get_transaction() as session:
                account = await self._ledger.get_or_create_account(
                    session, user_id, for_update=True
                )

                if account.last_check_in is not None and day_gap(
                    account.last_check_in, now, zone
                ) <= 0:
                    return {
                        "streak": account.current_streak,
                        "points_earned": 0,
                        "streak_bonus": 0,
                        "next_milestone": next_streak_milestone(
                            account.current_streak, milestones
                        ),
                        "already_checked_in": True,
                    }

                continues = (
                    account.last_check_in is not None
                    and day_gap(account.last_check_in, now, zone) == 1
                )
                new_streak = account.current_streak + 1 if continues else 1
                bonus = streak_bonus(new_streak, milestones)

                await self._accounts.update_where(
                    session,
                    Account.id == account.id,
                    values={
                        "current_streak": new_streak,
                        "longest_streak": max(account.longest_streak, new_streak),
                        "last_check_in": now,
                    },
                )

                await self._record_check_in(
                    session, account, new_streak, bonus, milestones, now
                )

                entry = await self._ledger.credit(
                    session,
                    user_id,
                    base_points + bonus,
                    TransactionReason.DAILY_CHECKIN,
                    description=f"Daily check-in (Streak: {new_streak} days)",
                    metadata={
                        "streak": new_streak,
                        "base_points": base_points,
                        "streak_bonus": bonus,
                    },
                )
        except ProgressionDomainException:
            raise
        except Exception as exc:
            self.log_error("check_in", exc, user_id=user_id)
            raise

        await self._ledger.publish_balance_change(entry)
        await self.emit_event(
            "streak.checked_in",
            {
                "user_id": user_id,
                "streak": new_streak,
                "points_earned": base_points + bonus,
                "streak_bonus": bonus,
            },
        )
        self.log_operation(
            "check_in",
            user_id=user_id,
            streak=new_streak,
            points_earned=base_points + bonus,
            streak_bonus=bonus,
        )
        return {
            "streak": new_streak,
            "points_earned": base_points + bonus,
            "streak_bonus": bonus,
            "next_milestone": next_streak_milestone(new_streak, milestones),
            "already_checked_in": False,
        }

    async def _record_check_in(
        self,
        session: AsyncSession,
        account: Account,
        new_streak: int,
        bonus: int,
        milestones: Mapping[int, int],
        now: datetime,
    ) -> StreakRecord:
        """Extend the open streak record, or close it and open a new one."""
        open_record = await self._records.find_one_where(
            session,
            StreakRecord.user_id == account.user_id,
            StreakRecord.is_broken.is_(False),
        )

        reached = achieved_milestones(new_streak, milestones)

        if open_record is not None and new_streak > 1:
            open_record.streak_count = new_streak
            open_record.last_check_in_date = now
            open_record.bonus_points_accrued = open_record.bonus_points_accrued + bonus
            open_record.milestones_achieved = sorted(
                set(open_record.milestones_achieved or []) | set(reached)
            )
            await self._records.flush(session)
            return open_record

        if open_record is not None:
            open_record.is_broken = True
            # Close before insert; the open-record index is unique per user
            await self._records.flush(session)

        record = StreakRecord(
            user_id=account.user_id,
            account_id=account.id,
            streak_count=new_streak,
            streak_start_date=now,
            last_check_in_date=now,
            bonus_points_accrued=bonus,
            milestones_achieved=reached,
            is_broken=False,
        )
        self._records.add(session, record)
        await self._records.flush(session)
        return record

    async def use_streak_freeze(self, user_id: str) -> Dict[str, Any]:
        """
        Spend the freeze cost and move the last check-in to now.

        The streak count is unchanged; the next day's check-in continues it.

        Raises:
            InsufficientBalanceError: Not enough available points
        """
        user_id = InputValidator.validate_user_id(user_id)
        cost = int(self.get_config("streaks.freeze_cost", STREAK_FREEZE_COST))
        now = self._clock()

        try:
            async with self._db.get_transaction() as session:
                entry = await self._ledger.debit(
                    session,
                    user_id,
                    cost,
                    TransactionReason.STREAK_FREEZE,
                    description="Used streak freeze protection",
                )
                await self._accounts.update_where(
                    session,
                    Account.user_id == user_id,
                    values={"last_check_in": now},
                )
        except ProgressionDomainException as exc:
            self.log.info(
                f"use_streak_freeze rejected: {exc.message}",
                extra={"user_id": user_id, "error_code": exc.error_code},
            )
            raise
        except Exception as exc:
            self.log_error("use_streak_freeze", exc, user_id=user_id)
            raise

        await self._ledger.publish_balance_change(entry)
        await self.emit_event(
            "streak.freeze_used",
            {"user_id": user_id, "points_spent": cost, "last_check_in": now},
        )
        self.log_operation("use_streak_freeze", user_id=user_id, points_spent=cost)
        return {
            "points_spent": cost,
            "available_points": entry.summary["available_points"],
            "last_check_in": now,
        }

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def needs_check_in(self, user_id: str) -> bool:
        """True if the user has not checked in on the current calendar day."""
        user_id = InputValidator.validate_user_id(user_id)
        async with self._db.get_session() as session:
            account = await self._ledger.find_account(session, user_id)
        if account is None or account.last_check_in is None:
            return True
        return day_gap(account.last_check_in, self._clock(), self._zone()) >= 1

    async def get_user_streak(self, user_id: str) -> Dict[str, Any]:
        """
        Current streak state plus the open record's milestones and bonus.

        Raises:
            NotFoundError: No account for the user
        """
        user_id = InputValidator.validate_user_id(user_id)
        milestones = self._milestones()
        async with self._db.get_session() as session:
            account = await self._ledger.find_account(session, user_id)
            if account is None:
                raise NotFoundError("Account", user_id)
            open_record = await self._records.find_one_where(
                session,
                StreakRecord.user_id == user_id,
                StreakRecord.is_broken.is_(False),
            )

        return {
            "current_streak": account.current_streak,
            "longest_streak": account.longest_streak,
            "last_check_in": account.last_check_in,
            "next_milestone": next_streak_milestone(account.current_streak, milestones),
            "achieved_milestones": list(open_record.milestones_achieved or [])
            if open_record
            else [],
            "total_bonus_earned": open_record.bonus_points_accrued if open_record else 0,
        }

    async def get_streak_history(self, user_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Streak records for a user, newest first."""
        user_id = InputValidator.validate_user_id(user_id)
        limit, _ = validate_pagination(limit, 0, LEADERBOARD_MAX_LIMIT)
        async with self._db.get_session() as session:
            records = await self._records.find_many_where(
                session,
                StreakRecord.user_id == user_id,
                order_by=[StreakRecord.streak_start_date.desc(), StreakRecord.id.desc()],
                limit=limit,
            )
        return [streak_record_view(r) for r in records]

    async def get_streak_leaderboard(
        self, limit: int = LEADERBOARD_DEFAULT_LIMIT
    ) -> List[Dict[str, Any]]:
        """Accounts by current_streak desc, then longest_streak desc."""
        max_limit = int(self.get_config("leaderboard.max_limit", LEADERBOARD_MAX_LIMIT))
        limit, _ = validate_pagination(limit, 0, max_limit)
        async with self._db.get_session() as session:
            accounts = await self._accounts.find_many_where(
                session,
                order_by=[
                    Account.current_streak.desc(),
                    Account.longest_streak.desc(),
                    Account.id.asc(),
                ],
                limit=limit,
            )
        return [account_summary(a) for a in accounts]
