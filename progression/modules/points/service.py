"""
PointsLedgerService - Balance and transaction log
==================================================

Handles:
- Awarding and spending points with an append-only transaction log
- Activity rewards from the configured activity table
- Account summaries, transaction history and rank

Every other progression service moves points through this ledger. They do
it inside their own transaction with the in-session primitives `credit()`
and `debit()`, then call `publish_balance_change()` once their transaction
has committed.

Atomicity
---------
- Accounts are created lazily (get-or-create under a SAVEPOINT; a lost
  insert race re-reads the winner's row)
- Credits are one `UPDATE accounts SET col = col + :n`
- Debits are one `UPDATE accounts ... WHERE available_points >= :n`; a zero
  rowcount means the balance was insufficient at the moment of the write
- The transaction row is inserted in the same database transaction as the
  balance change, so both exist or neither does
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from progression.core.logging.logger import get_logger
from progression.core.validation.input_validator import InputValidator
from progression.database.models import Account, PointTransaction
from progression.database.models.enums import ActivityType, TransactionReason
from progression.modules.shared.base_repository import BaseRepository
from progression.modules.shared.base_service import BaseService
from progression.modules.shared.constants import (
    ACTIVITY_REWARDS,
    LEADERBOARD_DEFAULT_LIMIT,
    LEADERBOARD_MAX_LIMIT,
    POINT_MILESTONES,
    RECENT_TRANSACTIONS_LIMIT,
    TRANSACTION_HISTORY_MAX_LIMIT,
)
from progression.modules.shared.exceptions import (
    InsufficientBalanceError,
    NotFoundError,
    ProgressionDomainException,
    ValidationError,
)
from progression.modules.shared.formulas import next_points_milestone
from progression.modules.shared.validators import validate_pagination, validate_points_amount

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from progression.core.config.manager import ConfigManager
    from progression.core.database.service import DatabaseService
    from progression.core.event.bus import EventBus


BALANCE_CHANGED_EVENT = "points.balance_changed"


class AccountRepository(BaseRepository[Account]):
    pass


class PointTransactionRepository(BaseRepository[PointTransaction]):
    pass


def account_summary(account: Account) -> Dict[str, Any]:
    """Public view of an account row."""
    return {
        "user_id": account.user_id,
        "total_points": account.total_points,
        "available_points": account.available_points,
        "lifetime_earned": account.lifetime_earned,
        "lifetime_spent": account.lifetime_spent,
        "current_streak": account.current_streak,
        "longest_streak": account.longest_streak,
        "last_check_in": account.last_check_in,
    }


def transaction_view(transaction: PointTransaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "user_id": transaction.user_id,
        "points": transaction.points,
        "reason": transaction.reason.value,
        "description": transaction.description,
        "metadata": transaction.meta_data,
        "created_at": transaction.created_at,
    }


@dataclass(frozen=True)
class LedgerEntry:
    """Outcome of one balance mutation, captured before commit."""

    user_id: str
    delta: int
    reason: TransactionReason
    transaction_id: int
    summary: Dict[str, Any]

    def event_payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "delta": self.delta,
            "reason": self.reason.value,
            "transaction_id": self.transaction_id,
            "available_points": self.summary["available_points"],
            "total_points": self.summary["total_points"],
        }


class PointsLedgerService(BaseService):
    """
    Points ledger: the only writer of account balances.

    Business Logic:
    - available_points == lifetime_earned - lifetime_spent, never negative
    - total_points == lifetime_earned
    - every balance change has exactly one PointTransaction
    - rank = 1 + number of accounts with strictly more total_points
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._db = database
        self._accounts = AccountRepository(
            Account, get_logger(f"{__name__}.AccountRepository")
        )
        self._transactions = PointTransactionRepository(
            PointTransaction, get_logger(f"{__name__}.PointTransactionRepository")
        )

    # =========================================================================
    # IN-SESSION PRIMITIVES
    # =========================================================================

    async def find_account(
        self, session: AsyncSession, user_id: str, *, for_update: bool = False
    ) -> Optional[Account]:
        return await self._accounts.find_one_where(
            session, Account.user_id == user_id, for_update=for_update
        )

    async def get_or_create_account(
        self, session: AsyncSession, user_id: str, *, for_update: bool = False
    ) -> Account:
        """
        Return the user's account, inserting a zeroed one if absent.

        The insert runs under a SAVEPOINT; if a concurrent transaction won the
        unique `user_id` race, the savepoint is rolled back and the winner's
        row is read instead.
        """
        account = await self.find_account(session, user_id, for_update=for_update)
        if account is not None:
            return account

        try:
            async with session.begin_nested():
                account = Account(
                    user_id=user_id,
                    total_points=0,
                    available_points=0,
                    lifetime_earned=0,
                    lifetime_spent=0,
                    current_streak=0,
                    longest_streak=0,
                )
                self._accounts.add(session, account)
                await self._accounts.flush(session)
        except IntegrityError:
            self.log.debug(
                "Account insert lost race; reading existing row",
                extra={"user_id": user_id},
            )
            account = await self.find_account(session, user_id, for_update=for_update)
            if account is None:
                raise
            return account

        self.log.info("Account created", extra={"user_id": user_id})
        return account

    async def credit(
        self,
        session: AsyncSession,
        user_id: str,
        points: int,
        reason: TransactionReason,
        description: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> LedgerEntry:
        """
        Add points inside the caller's transaction.

        Increments total_points, available_points and lifetime_earned in one
        statement and appends a +points transaction.
        """
        validate_points_amount(points)
        account = await self.get_or_create_account(session, user_id)

        await self._accounts.update_where(
            session,
            Account.id == account.id,
            values={
                "total_points": Account.total_points + points,
                "available_points": Account.available_points + points,
                "lifetime_earned": Account.lifetime_earned + points,
            },
        )
        await self._accounts.refresh(session, account)

        transaction = await self._append(
            session, account, points, reason, description, metadata
        )
        return LedgerEntry(
            user_id=user_id,
            delta=points,
            reason=reason,
            transaction_id=transaction.id,
            summary=account_summary(account),
        )

    async def debit(
        self,
        session: AsyncSession,
        user_id: str,
        points: int,
        reason: TransactionReason,
        description: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> LedgerEntry:
        """
        Remove points inside the caller's transaction.

        Raises:
            InsufficientBalanceError: No account, or available_points < points
        """
        validate_points_amount(points)
        account = await self.find_account(session, user_id)
        if account is None:
            raise InsufficientBalanceError(points, 0)

        updated = await self._accounts.update_where(
            session,
            Account.id == account.id,
            Account.available_points >= points,
            values={
                "available_points": Account.available_points - points,
                "lifetime_spent": Account.lifetime_spent + points,
            },
        )
        await self._accounts.refresh(session, account)
        if updated == 0:
            raise InsufficientBalanceError(points, account.available_points)

        transaction = await self._append(
            session, account, -points, reason, description, metadata
        )
        return LedgerEntry(
            user_id=user_id,
            delta=-points,
            reason=reason,
            transaction_id=transaction.id,
            summary=account_summary(account),
        )

    async def _append(
        self,
        session: AsyncSession,
        account: Account,
        delta: int,
        reason: TransactionReason,
        description: Optional[str],
        metadata: Optional[Mapping[str, Any]],
    ) -> PointTransaction:
        transaction = PointTransaction(
            user_id=account.user_id,
            account_id=account.id,
            points=delta,
            reason=reason,
            description=description,
            meta_data=dict(metadata) if metadata else None,
        )
        self._transactions.add(session, transaction)
        await self._transactions.flush(session)
        return transaction

    async def publish_balance_change(self, entry: LedgerEntry) -> None:
        """Emit `points.balance_changed`. Call after commit."""
        await self.emit_event(BALANCE_CHANGED_EVENT, entry.event_payload())

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    async def award_points(
        self,
        user_id: str,
        points: int,
        reason: TransactionReason | str,
        description: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Credit points, creating the account if absent.

        Args:
            user_id: Caller-supplied user id
            points: Positive amount
            reason: TransactionReason (member or name)
            description: Optional human-readable line
            metadata: Optional JSON context

        Returns:
            Account summary after the credit

        Raises:
            ValidationError: Bad user id, amount or reason
        """
        user_id = InputValidator.validate_user_id(user_id)
        validate_points_amount(points)
        reason = InputValidator.validate_enum(reason, TransactionReason, "reason")
        metadata = InputValidator.validate_metadata(metadata)

        try:
            async with self._db.get_transaction() as session:
                entry = await self.credit(
                    session, user_id, points, reason, description, metadata
                )
        except Exception as exc:
            self.log_error("award_points", exc, user_id=user_id, points=points)
            raise

        await self.publish_balance_change(entry)
        self.log_operation(
            "award_points",
            user_id=user_id,
            points=points,
            reason=reason.value,
            available_points=entry.summary["available_points"],
        )
        return entry.summary

    async def spend_points(
        self,
        user_id: str,
        points: int,
        reason: TransactionReason | str,
        description: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Debit points from an existing account.

        Returns:
            Account summary after the debit

        Raises:
            InsufficientBalanceError: No account, or not enough available points
            ValidationError: Bad user id, amount or reason
        """
        user_id = InputValidator.validate_user_id(user_id)
        validate_points_amount(points)
        reason = InputValidator.validate_enum(reason, TransactionReason, "reason")
        metadata = InputValidator.validate_metadata(metadata)

        try:
            async with self._db.get_transaction() as session:
                entry = await self.debit(
                    session, user_id, points, reason, description, metadata
                )
        except ProgressionDomainException as exc:
            self.log.info(
                f"spend_points rejected: {exc.message}",
                extra={"user_id": user_id, "points": points, "error_code": exc.error_code},
            )
            raise
        except Exception as exc:
            self.log_error("spend_points", exc, user_id=user_id, points=points)
            raise

        await self.publish_balance_change(entry)
        self.log_operation(
            "spend_points",
            user_id=user_id,
            points=points,
            reason=reason.value,
            available_points=entry.summary["available_points"],
        )
        return entry.summary

    def activity_reward(self, activity_type: ActivityType | str) -> Tuple[ActivityType, int, str]:
        """
        Resolve an activity to (type, points, description).

        `points.activity_rewards` in config overrides the built-in table.

        Raises:
            ValidationError: Unknown activity type
        """
        activity = InputValidator.validate_enum(activity_type, ActivityType, "activity_type")
        configured = self.get_config("points.activity_rewards", {}) or {}
        entry = configured.get(activity.value)
        if entry:
            return activity, int(entry["points"]), str(entry.get("description", ""))
        if activity.value not in ACTIVITY_REWARDS:
            raise ValidationError("activity_type", f"No reward defined for {activity.value}")
        points, description = ACTIVITY_REWARDS[activity.value]
        return activity, points, description

    async def award_activity_points(
        self,
        user_id: str,
        activity_type: ActivityType | str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Award the configured points for an activity.

        Raises:
            ValidationError: Unknown activity type
        """
        activity, points, description = self.activity_reward(activity_type)
        return await self.award_points(
            user_id,
            points,
            TransactionReason.for_activity(activity),
            description=description,
            metadata=metadata,
        )

    # =========================================================================
    # READS
    # =========================================================================

    async def get_summary(self, user_id: str) -> Dict[str, Any]:
        """
        Account summary.

        Raises:
            NotFoundError: No account for the user
        """
        user_id = InputValidator.validate_user_id(user_id)
        async with self._db.get_session() as session:
            account = await self.find_account(session, user_id)
        if account is None:
            raise NotFoundError("Account", user_id)
        return account_summary(account)

    async def get_points_summary(self, user_id: str) -> Dict[str, Any]:
        """
        Summary plus rank, next points milestone and recent transactions.

        Raises:
            NotFoundError: No account for the user
        """
        user_id = InputValidator.validate_user_id(user_id)
        recent_limit = int(
            self.get_config("points.recent_transactions", RECENT_TRANSACTIONS_LIMIT)
        )
        milestones = self.get_config("points.milestones", list(POINT_MILESTONES))

        async with self._db.get_session() as session:
            account = await self.find_account(session, user_id)
            if account is None:
                raise NotFoundError("Account", user_id)
            rank = await self._rank_of(session, account.total_points)
            recent = await self._transactions.find_many_where(
                session,
                PointTransaction.user_id == user_id,
                order_by=[PointTransaction.created_at.desc(), PointTransaction.id.desc()],
                limit=recent_limit,
            )

        return {
            **account_summary(account),
            "rank": rank,
            "next_milestone": next_points_milestone(account.total_points, milestones),
            "recent_transactions": [transaction_view(t) for t in recent],
        }

    async def get_transaction_history(
        self, user_id: str, limit: int = 50, offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Transactions for a user, newest first."""
        user_id = InputValidator.validate_user_id(user_id)
        limit, offset = validate_pagination(limit, offset, TRANSACTION_HISTORY_MAX_LIMIT)
        async with self._db.get_session() as session:
            rows = await self._transactions.find_many_where(
                session,
                PointTransaction.user_id == user_id,
                order_by=[PointTransaction.created_at.desc(), PointTransaction.id.desc()],
                limit=limit,
                offset=offset,
            )
        return [transaction_view(t) for t in rows]

    async def _rank_of(self, session: AsyncSession, total_points: int) -> int:
        higher = await self._accounts.count(session, Account.total_points > total_points)
        return higher + 1

    async def get_rank(self, user_id: str) -> int:
        """
        1 + number of accounts with strictly greater total_points.

        Ties share a rank.

        Raises:
            NotFoundError: No account for the user
        """
        user_id = InputValidator.validate_user_id(user_id)
        async with self._db.get_session() as session:
            account = await self.find_account(session, user_id)
            if account is None:
                raise NotFoundError("Account", user_id)
            return await self._rank_of(session, account.total_points)

    async def get_leaderboard(self, limit: int = LEADERBOARD_DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        """Accounts by total_points desc, then current_streak desc."""
        max_limit = int(self.get_config("leaderboard.max_limit", LEADERBOARD_MAX_LIMIT))
        limit, _ = validate_pagination(limit, 0, max_limit)
        async with self._db.get_session() as session:
            accounts = await self._accounts.find_many_where(
                session,
                order_by=[
                    Account.total_points.desc(),
                    Account.current_streak.desc(),
                    Account.id.asc(),
                ],
                limit=limit,
            )
        return [account_summary(a) for a in accounts]

    async def verify_ledger(self, user_id: str) -> Dict[str, Any]:
        """
        Recompute a user's balance from the transaction log.

        Returns:
            Dict with the stored balance, the log sum and whether they agree
        """
        user_id = InputValidator.validate_user_id(user_id)
        async with self._db.get_session() as session:
            account = await self.find_account(session, user_id)
            if account is None:
                raise NotFoundError("Account", user_id)
            result = await session.execute(
                select(func.coalesce(func.sum(PointTransaction.points), 0)).where(
                    PointTransaction.user_id == user_id
                )
            )
            log_sum = int(result.scalar_one())

        expected = account.lifetime_earned - account.lifetime_spent
        return {
            "user_id": user_id,
            "available_points": account.available_points,
            "transaction_sum": log_sum,
            "consistent": account.available_points == expected == log_sum
            and account.available_points >= 0,
        }
