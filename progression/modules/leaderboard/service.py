"""
Leaderboard Service
===================

Purpose
-------
Read-only rankings computed live from account balances and the
transaction log. There is no snapshot table; every query reflects the
latest committed balances.

Domain
------
- Points leaderboard with shared ranks for ties
- A user's position with the entries around it
- Streak leaderboard, top lifetime earners, top gainers over a window
- Challenge-completion ranking and system-wide totals

Ranking
-------
`rank` is competition ranking on total_points: 1 + number of accounts with
strictly more points, so tied accounts share a rank. `position` is the
1-based row number in the ordering (total_points desc, current_streak desc,
id asc) and is unique.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List

from sqlalchemy import and_, func, or_, select

from progression.core.database.base import utc_now
from progression.core.logging.logger import get_logger
from progression.core.validation.input_validator import InputValidator
from progression.database.models import Account, ChallengeEnrollment, PointTransaction, Redemption
from progression.database.models.enums import EnrollmentStatus
from progression.modules.points.service import AccountRepository
from progression.modules.shared.base_service import BaseService
from progression.modules.shared.constants import (
    LEADERBOARD_DEFAULT_LIMIT,
    LEADERBOARD_MAX_LIMIT,
    LEADERBOARD_POSITION_WINDOW,
    TOP_GAINERS_DEFAULT_DAYS,
)
from progression.modules.shared.exceptions import NotFoundError
from progression.modules.shared.formulas import window_start
from progression.modules.shared.validators import validate_pagination

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from progression.core.config.manager import ConfigManager
    from progression.core.database.service import DatabaseService
    from progression.core.event.bus import EventBus

MAX_GAINER_WINDOW_DAYS = 365

_POINTS_ORDER = (Account.total_points.desc(), Account.current_streak.desc(), Account.id.asc())


def leaderboard_entry(account: Account) -> Dict[str, Any]:
    return {
        "user_id": account.user_id,
        "total_points": account.total_points,
        "lifetime_earned": account.lifetime_earned,
        "current_streak": account.current_streak,
        "longest_streak": account.longest_streak,
    }


class LeaderboardService(BaseService):
    """
    Live leaderboards.

    Public Methods
    --------------
    - get_leaderboard() -> Points ranking page
    - get_user_position() -> A user's rank and neighbours
    - get_streak_leaderboard() -> Users with an active streak
    - get_top_earners() -> By lifetime points earned
    - get_top_gainers() -> By points earned in the last N days
    - get_challenge_completion_leaderboard() -> By challenges completed
    - get_global_stats() -> System-wide totals and averages
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._db = database
        self._clock = clock
        self._accounts = AccountRepository(
            Account, get_logger(f"{__name__}.AccountRepository")
        )

    def _max_limit(self) -> int:
        return int(self.get_config("leaderboard.max_limit", LEADERBOARD_MAX_LIMIT))

    async def _ranked(
        self, session: AsyncSession, accounts: List[Account], offset: int
    ) -> List[Dict[str, Any]]:
        """Attach competition rank and position to a page ordered by points."""
        if not accounts:
            return []
        rank = 1 + await self._accounts.count(
            session, Account.total_points > accounts[0].total_points
        )
        previous_total = accounts[0].total_points
        rows: List[Dict[str, Any]] = []
        for index, account in enumerate(accounts):
            position = offset + index + 1
            if account.total_points != previous_total:
                # Every earlier row has strictly more points
                rank = position
                previous_total = account.total_points
            rows.append({**leaderboard_entry(account), "rank": rank, "position": position})
        return rows

    # ========================================================================
    # PUBLIC API - Read Operations
    # ========================================================================

    async def get_leaderboard(
        self, limit: int = LEADERBOARD_DEFAULT_LIMIT, offset: int = 0
    ) -> List[Dict[str, Any]]:
        """
        Accounts by total_points desc, then current_streak desc.

        Raises:
            ValidationError: limit < 1 or offset < 0
        """
        limit, offset = validate_pagination(limit, offset, self._max_limit())
        async with self._db.get_session() as session:
            accounts = await self._accounts.find_many_where(
                session, order_by=list(_POINTS_ORDER), limit=limit, offset=offset
            )
            return await self._ranked(session, accounts, offset)

    async def get_user_position(self, user_id: str) -> Dict[str, Any]:
        """
        A user's rank plus the entries within `leaderboard.position_window`
        positions on either side.

        Raises:
            NotFoundError: No account for the user
        """
        user_id = InputValidator.validate_user_id(user_id)
        window = int(self.get_config("leaderboard.position_window", LEADERBOARD_POSITION_WINDOW))

        async with self._db.get_session() as session:
            account = await self._accounts.find_one_where(session, Account.user_id == user_id)
            if account is None:
                raise NotFoundError("Account", user_id)

            ahead = await self._accounts.count(
                session,
                or_(
                    Account.total_points > account.total_points,
                    and_(
                        Account.total_points == account.total_points,
                        Account.current_streak > account.current_streak,
                    ),
                    and_(
                        Account.total_points == account.total_points,
                        Account.current_streak == account.current_streak,
                        Account.id < account.id,
                    ),
                ),
            )
            position = ahead + 1
            start = max(0, ahead - window)
            neighbours = await self._accounts.find_many_where(
                session,
                order_by=list(_POINTS_ORDER),
                limit=(ahead - start) + window + 1,
                offset=start,
            )
            around = await self._ranked(session, neighbours, start)

        entry = next(row for row in around if row["user_id"] == user_id)
        return {
            "user": entry,
            "rank": entry["rank"],
            "position": position,
            "around": around,
        }

    async def get_streak_leaderboard(
        self, limit: int = LEADERBOARD_DEFAULT_LIMIT
    ) -> List[Dict[str, Any]]:
        """Users with current_streak > 0, longest running streak first."""
        limit, _ = validate_pagination(limit, 0, self._max_limit())
        async with self._db.get_session() as session:
            accounts = await self._accounts.find_many_where(
                session,
                Account.current_streak > 0,
                order_by=[
                    Account.current_streak.desc(),
                    Account.longest_streak.desc(),
                    Account.id.asc(),
                ],
                limit=limit,
            )
        return [
            {**leaderboard_entry(a), "rank": position}
            for position, a in enumerate(accounts, start=1)
        ]

    async def get_top_earners(
        self, limit: int = LEADERBOARD_DEFAULT_LIMIT
    ) -> List[Dict[str, Any]]:
        """Accounts by lifetime_earned desc, then total_points desc."""
        limit, _ = validate_pagination(limit, 0, self._max_limit())
        async with self._db.get_session() as session:
            accounts = await self._accounts.find_many_where(
                session,
                order_by=[
                    Account.lifetime_earned.desc(),
                    Account.total_points.desc(),
                    Account.id.asc(),
                ],
                limit=limit,
            )
        return [
            {**leaderboard_entry(a), "rank": position}
            for position, a in enumerate(accounts, start=1)
        ]

    async def get_top_gainers(
        self, days: int = TOP_GAINERS_DEFAULT_DAYS, limit: int = LEADERBOARD_DEFAULT_LIMIT
    ) -> List[Dict[str, Any]]:
        """
        Users by points earned in the trailing `days` window.

        Only credits count; spending does not reduce a user's gain.
        """
        days = InputValidator.validate_positive_integer(
            days, "days", max_value=MAX_GAINER_WINDOW_DAYS
        )
        limit, _ = validate_pagination(limit, 0, self._max_limit())
        since = window_start(self._clock(), days)

        gained = func.sum(PointTransaction.points).label("points_gained")
        stmt = (
            select(PointTransaction.user_id, gained)
            .where(PointTransaction.created_at >= since, PointTransaction.points > 0)
            .group_by(PointTransaction.user_id)
            .order_by(gained.desc(), PointTransaction.user_id.asc())
            .limit(limit)
        )
        async with self._db.get_session() as session:
            result = await session.execute(stmt)
            rows = result.all()

        self.log.debug(
            "Top gainers computed",
            extra={"days": days, "since": since.isoformat(), "results": len(rows)},
        )
        return [
            {"user_id": user_id, "points_gained": int(points), "rank": position}
            for position, (user_id, points) in enumerate(rows, start=1)
        ]

    async def get_challenge_completion_leaderboard(
        self, limit: int = LEADERBOARD_DEFAULT_LIMIT
    ) -> List[Dict[str, Any]]:
        """Users by number of COMPLETED enrollments, then total_points desc."""
        limit, _ = validate_pagination(limit, 0, self._max_limit())

        completed = func.count(ChallengeEnrollment.id).label("challenges_completed")
        stmt = (
            select(Account.user_id, Account.total_points, completed)
            .join(ChallengeEnrollment, ChallengeEnrollment.account_id == Account.id)
            .where(ChallengeEnrollment.status == EnrollmentStatus.COMPLETED)
            .group_by(Account.id, Account.user_id, Account.total_points)
            .order_by(completed.desc(), Account.total_points.desc(), Account.id.asc())
            .limit(limit)
        )
        async with self._db.get_session() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            {
                "user_id": user_id,
                "total_points": total_points,
                "challenges_completed": int(count),
                "rank": position,
            }
            for position, (user_id, total_points, count) in enumerate(rows, start=1)
        ]

    async def get_global_stats(self) -> Dict[str, Any]:
        """
        System-wide totals.

        Returns:
            Dict with total_users, total_points_in_circulation (sum of
            balances), total_points_earned (sum of lifetime_earned),
            total_challenges_completed, total_redemptions (every status),
            average_current_streak, average_longest_streak and
            longest_streak_holder (None until someone has a streak)
        """
        accounts_stmt = select(
            func.count(Account.id),
            func.coalesce(func.sum(Account.total_points), 0),
            func.coalesce(func.sum(Account.lifetime_earned), 0),
            func.avg(Account.current_streak),
            func.avg(Account.longest_streak),
        )
        completed_stmt = select(func.count(ChallengeEnrollment.id)).where(
            ChallengeEnrollment.status == EnrollmentStatus.COMPLETED
        )
        redemptions_stmt = select(func.count(Redemption.id))

        async with self._db.get_session() as session:
            users, circulating, earned, avg_current, avg_longest = (
                await session.execute(accounts_stmt)
            ).one()
            completed = await session.scalar(completed_stmt)
            redemptions = await session.scalar(redemptions_stmt)
            holders = await self._accounts.find_many_where(
                session,
                Account.longest_streak > 0,
                order_by=[Account.longest_streak.desc(), Account.id.asc()],
                limit=1,
            )

        holder = holders[0] if holders else None
        return {
            "total_users": int(users),
            "total_points_in_circulation": int(circulating),
            "total_points_earned": int(earned),
            "total_challenges_completed": int(completed or 0),
            "total_redemptions": int(redemptions or 0),
            "average_current_streak": round(float(avg_current or 0), 2),
            "average_longest_streak": round(float(avg_longest or 0), 2),
            "longest_streak_holder": (
                {"user_id": holder.user_id, "longest_streak": holder.longest_streak}
                if holder is not None
                else None
            ),
        }
