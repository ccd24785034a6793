"""
RedemptionService - Spending points on catalog rewards
=======================================================

Handles:
- Redeeming a reward (debit, stock decrement, redemption row, coupon)
- User cancellation of a PENDING redemption with a full refund
- Administrative status moves (APPROVED, DELIVERED) and tracking numbers
- Redemption history and per-reward statistics

Atomicity
---------
Validation and all effects of `redeem()` and `cancel()` run in a single
transaction with the reward row locked. The stock decrement is
`UPDATE ... WHERE stock_quantity > 0` and the cancel transition is
`UPDATE ... WHERE status = 'PENDING'`, so a concurrent writer can never
oversell stock or refund twice. Any failure rolls back every effect.

Lifecycle
---------
    PENDING --> APPROVED --> DELIVERED    (update_status)
    PENDING --> CANCELLED                 (cancel, refunds points)
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import func, select

from progression.core.database.base import utc_now
from progression.core.logging.logger import get_logger
from progression.core.validation.input_validator import InputValidator
from progression.database.models import Redemption, RewardItem
from progression.database.models.enums import RedemptionStatus, RewardCategory, TransactionReason
from progression.modules.reward.catalog_service import RewardItemRepository, reward_view
from progression.modules.shared.base_repository import BaseRepository
from progression.modules.shared.base_service import BaseService
from progression.modules.shared.constants import COUPON_SUFFIX_LENGTH
from progression.modules.shared.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ProgressionDomainException,
    UnauthorizedError,
)
from progression.modules.shared.formulas import generate_coupon_code
from progression.modules.shared.quantity import Bounded
from progression.modules.shared.validators import validate_balance, validate_text

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from progression.core.config.manager import ConfigManager
    from progression.core.database.service import DatabaseService
    from progression.core.event.bus import EventBus
    from progression.modules.points.service import PointsLedgerService

COUPON_ATTEMPTS = 5


class RedemptionRepository(BaseRepository[Redemption]):
    pass


def redemption_view(
    redemption: Redemption, reward: Optional[RewardItem] = None
) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "id": redemption.id,
        "user_id": redemption.user_id,
        "reward_id": redemption.reward_id,
        "points_spent": redemption.points_spent,
        "status": redemption.status.value,
        "coupon_code": redemption.coupon_code,
        "shipping_address": redemption.shipping_address,
        "notes": redemption.notes,
        "tracking_number": redemption.tracking_number,
        "redeemed_at": redemption.redeemed_at,
    }
    if reward is not None:
        view["reward"] = reward_view(reward)
    return view


class RedemptionService(BaseService):
    """
    Reward redemption workflow.

    Business Logic:
    - redeem() checks, in order: reward exists and is active, not expired,
      in stock, affordable, per-user limit not reached
    - Every prior redemption of the reward, cancelled ones included,
      counts toward the per-user limit
    - Only the owner may cancel, and only while PENDING
    - update_status() only moves forward, never touches balances and
      cannot cancel
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
        self._rewards = RewardItemRepository(
            RewardItem, get_logger(f"{__name__}.RewardItemRepository")
        )
        self._redemptions = RedemptionRepository(
            Redemption, get_logger(f"{__name__}.RedemptionRepository")
        )

    async def _unique_coupon_code(self, session: AsyncSession, brand: str) -> str:
        suffix_length = int(self.get_config("rewards.coupon_suffix_length", COUPON_SUFFIX_LENGTH))
        for _ in range(COUPON_ATTEMPTS):
            code = generate_coupon_code(brand, suffix_length)
            if not await self._redemptions.exists(session, Redemption.coupon_code == code):
                return code
        raise ConflictError("Coupon", brand, "Could not generate a unique coupon code")

    # =========================================================================
    # REDEEM
    # =========================================================================

    async def redeem(
        self,
        user_id: str,
        reward_id: int,
        shipping_address: Optional[Mapping[str, Any]] = None,
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Exchange points for a reward.

        Args:
            user_id: Redeeming user
            reward_id: Catalog reward
            shipping_address: Optional delivery details stored as JSON
            notes: Optional free text

        Returns:
            Redemption view (status PENDING) with the reward and the
            account summary after the debit

        Raises:
            NotFoundError: Unknown reward
            InvalidStateError: Inactive, expired, out of stock, or the
                per-user limit is reached
            InsufficientBalanceError: Not enough available points
        """
        user_id = InputValidator.validate_user_id(user_id)
        reward_id = InputValidator.validate_entity_id(reward_id, "reward_id")
        shipping_address = InputValidator.validate_metadata(shipping_address, "shipping_address")
        validate_text(notes, "notes", required=False, max_length=1000)
        now = self._clock()

        try:
            async with self._db.get_transaction() as session:
                reward = await self._rewards.get_for_update(session, reward_id)
                if reward is None:
                    raise NotFoundError("Reward", reward_id)
                if not reward.is_active:
                    raise InvalidStateError("redeem", "Reward is inactive")
                if reward.expiry_date is not None and reward.expiry_date < now:
                    raise InvalidStateError("redeem", "Reward has expired")
                stock = reward.stock_quantity
                if isinstance(stock, Bounded) and stock.value <= 0:
                    raise InvalidStateError("redeem", "Reward is out of stock")

                account = await self._ledger.find_account(session, user_id, for_update=True)
                validate_balance(
                    reward.point_cost, account.available_points if account else 0
                )

                limit = reward.redemption_limit_per_user
                if isinstance(limit, Bounded):
                    used = await self._redemptions.count(
                        session,
                        Redemption.user_id == user_id,
                        Redemption.reward_id == reward_id,
                    )
                    if not limit.allows(used):
                        raise InvalidStateError(
                            "redeem", f"Redemption limit reached ({limit.value} per user)"
                        )

                if isinstance(stock, Bounded):
                    decremented = await self._rewards.update_where(
                        session,
                        RewardItem.id == reward_id,
                        RewardItem.stock_quantity > 0,
                        values={"stock_quantity": RewardItem.stock_quantity - 1},
                    )
                    if decremented == 0:
                        raise InvalidStateError("redeem", "Reward is out of stock")

                coupon_code = None
                if reward.category is RewardCategory.DISCOUNT_COUPON:
                    coupon_code = await self._unique_coupon_code(session, reward.brand)

                redemption = Redemption(
                    user_id=user_id,
                    account_id=account.id,
                    reward_id=reward_id,
                    points_spent=reward.point_cost,
                    status=RedemptionStatus.PENDING,
                    coupon_code=coupon_code,
                    shipping_address=shipping_address,
                    notes=notes,
                    redeemed_at=now,
                )
                self._redemptions.add(session, redemption)
                await self._redemptions.flush(session)

                entry = await self._ledger.debit(
                    session,
                    user_id,
                    reward.point_cost,
                    TransactionReason.REWARD_REDEMPTION,
                    description=f"Redeemed: {reward.title}",
                    metadata={
                        "reward_id": reward_id,
                        "redemption_id": redemption.id,
                        "reward_title": reward.title,
                    },
                )
                await self._rewards.refresh(session, reward)
                view = redemption_view(redemption, reward)
        except ProgressionDomainException as exc:
            self.log.info(
                f"redeem rejected: {exc.message}",
                extra={"user_id": user_id, "reward_id": reward_id, "error_code": exc.error_code},
            )
            raise
        except Exception as exc:
            self.log_error("redeem", exc, user_id=user_id, reward_id=reward_id)
            raise

        await self._ledger.publish_balance_change(entry)
        await self.emit_event(
            "reward.redeemed",
            {
                "user_id": user_id,
                "reward_id": reward_id,
                "redemption_id": view["id"],
                "points_spent": view["points_spent"],
            },
        )
        self.log_operation(
            "redeem",
            user_id=user_id,
            reward_id=reward_id,
            redemption_id=view["id"],
            points_spent=view["points_spent"],
        )
        return {**view, "account": entry.summary}

    # =========================================================================
    # CANCEL
    # =========================================================================

    async def cancel(self, user_id: str, redemption_id: int) -> Dict[str, Any]:
        """
        Cancel a PENDING redemption, refunding points and restoring stock.

        Returns:
            Redemption view (status CANCELLED) with the account summary
            after the refund

        Raises:
            NotFoundError: Unknown redemption
            UnauthorizedError: Caller does not own the redemption
            InvalidStateError: Redemption is not PENDING
        """
        user_id = InputValidator.validate_user_id(user_id)
        redemption_id = InputValidator.validate_entity_id(redemption_id, "redemption_id")

        try:
            async with self._db.get_transaction() as session:
                redemption = await self._redemptions.get_for_update(session, redemption_id)
                if redemption is None:
                    raise NotFoundError("Redemption", redemption_id)
                if redemption.user_id != user_id:
                    raise UnauthorizedError("cancel_redemption", user_id)
                if redemption.status is not RedemptionStatus.PENDING:
                    raise InvalidStateError(
                        "cancel_redemption",
                        f"Only PENDING redemptions can be cancelled, this one is "
                        f"{redemption.status.value}",
                    )

                won = await self._redemptions.update_where(
                    session,
                    Redemption.id == redemption_id,
                    Redemption.status == RedemptionStatus.PENDING,
                    values={"status": RedemptionStatus.CANCELLED},
                )
                if won == 0:
                    raise InvalidStateError(
                        "cancel_redemption", "Redemption is no longer PENDING"
                    )

                reward = await self._rewards.get_for_update(session, redemption.reward_id)
                if reward is None:
                    raise NotFoundError("Reward", redemption.reward_id)

                entry = await self._ledger.credit(
                    session,
                    user_id,
                    redemption.points_spent,
                    TransactionReason.REDEMPTION_CANCELLED,
                    description=f"Refund: {reward.title}",
                    metadata={
                        "redemption_id": redemption_id,
                        "original_reward_id": reward.id,
                    },
                )

                if reward.stock_quantity.is_tracked:
                    await self._rewards.update_where(
                        session,
                        RewardItem.id == reward.id,
                        values={"stock_quantity": RewardItem.stock_quantity + 1},
                    )
                    await self._rewards.refresh(session, reward)

                await self._redemptions.refresh(session, redemption)
                view = redemption_view(redemption, reward)
        except ProgressionDomainException as exc:
            self.log.info(
                f"cancel rejected: {exc.message}",
                extra={
                    "user_id": user_id,
                    "redemption_id": redemption_id,
                    "error_code": exc.error_code,
                },
            )
            raise
        except Exception as exc:
            self.log_error("cancel", exc, user_id=user_id, redemption_id=redemption_id)
            raise

        await self._ledger.publish_balance_change(entry)
        await self.emit_event(
            "reward.redemption_cancelled",
            {
                "user_id": user_id,
                "reward_id": view["reward_id"],
                "redemption_id": redemption_id,
                "points_refunded": view["points_spent"],
            },
        )
        self.log_operation(
            "cancel_redemption",
            user_id=user_id,
            redemption_id=redemption_id,
            points_refunded=view["points_spent"],
        )
        return {**view, "account": entry.summary}

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    async def update_status(
        self,
        redemption_id: int,
        status: RedemptionStatus | str,
        tracking_number: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Move a redemption along its fulfilment lifecycle.

        Args:
            redemption_id: Redemption to update
            status: APPROVED or DELIVERED, later than the current status
            tracking_number: Optional carrier reference

        Raises:
            NotFoundError: Unknown redemption
            InvalidStateError: Target is CANCELLED, the redemption is
                already DELIVERED or CANCELLED, or the target does not lie
                after the current status
        """
        redemption_id = InputValidator.validate_entity_id(redemption_id, "redemption_id")
        status = InputValidator.validate_enum(status, RedemptionStatus, "status")
        tracking_number = InputValidator.validate_optional_string(
            tracking_number, "tracking_number", max_length=100
        )
        if status is RedemptionStatus.CANCELLED:
            raise InvalidStateError(
                "update_status", "Cancellation must go through cancel, which refunds points"
            )

        try:
            async with self._db.get_transaction() as session:
                redemption = await self._redemptions.get_for_update(session, redemption_id)
                if redemption is None:
                    raise NotFoundError("Redemption", redemption_id)
                previous = redemption.status
                if previous.is_terminal:
                    raise InvalidStateError(
                        "update_status", f"Redemption is already {previous.value}"
                    )
                if not previous.can_advance_to(status):
                    raise InvalidStateError(
                        "update_status",
                        f"Cannot move redemption from {previous.value} to {status.value}",
                    )

                values: Dict[str, Any] = {"status": status}
                if tracking_number is not None:
                    values["tracking_number"] = tracking_number
                moved = await self._redemptions.update_where(
                    session,
                    Redemption.id == redemption_id,
                    Redemption.status == previous,
                    values=values,
                )
                if moved == 0:
                    raise InvalidStateError(
                        "update_status", "Redemption changed concurrently; retry"
                    )
                await self._redemptions.refresh(session, redemption)
                view = redemption_view(redemption)
        except ProgressionDomainException as exc:
            self.log.info(
                f"update_status rejected: {exc.message}",
                extra={"redemption_id": redemption_id, "error_code": exc.error_code},
            )
            raise
        except Exception as exc:
            self.log_error("update_status", exc, redemption_id=redemption_id)
            raise

        await self.emit_event(
            "reward.redemption_status_changed",
            {
                "user_id": view["user_id"],
                "redemption_id": redemption_id,
                "previous_status": previous.value,
                "status": view["status"],
            },
        )
        self.log_operation(
            "update_redemption_status",
            redemption_id=redemption_id,
            previous_status=previous.value,
            status=view["status"],
        )
        return view

    # =========================================================================
    # READS
    # =========================================================================

    async def get_user_redemptions(
        self, user_id: str, status: Optional[RedemptionStatus | str] = None
    ) -> List[Dict[str, Any]]:
        """A user's redemptions with their rewards, newest first."""
        user_id = InputValidator.validate_user_id(user_id)
        conditions = [Redemption.user_id == user_id]
        if status is not None:
            status = InputValidator.validate_enum(status, RedemptionStatus, "status")
            conditions.append(Redemption.status == status)

        async with self._db.get_session() as session:
            redemptions = await self._redemptions.find_many_where(
                session,
                *conditions,
                eager_load=[Redemption.reward],
                order_by=[Redemption.redeemed_at.desc(), Redemption.id.desc()],
            )
        return [redemption_view(r, r.reward) for r in redemptions]

    async def get_redemption_stats(self, reward_id: int) -> Dict[str, Any]:
        """
        Redemption counts for a reward, total and by status.

        Raises:
            NotFoundError: Unknown reward
        """
        reward_id = InputValidator.validate_entity_id(reward_id, "reward_id")
        async with self._db.get_session() as session:
            if not await self._rewards.exists(session, RewardItem.id == reward_id):
                raise NotFoundError("Reward", reward_id)
            result = await session.execute(
                select(Redemption.status, func.count())
                .where(Redemption.reward_id == reward_id)
                .group_by(Redemption.status)
            )
            counts = {status: int(count) for status, count in result.all()}

        return {
            "reward_id": reward_id,
            "total": sum(counts.values()),
            "pending": counts.get(RedemptionStatus.PENDING, 0),
            "approved": counts.get(RedemptionStatus.APPROVED, 0),
            "delivered": counts.get(RedemptionStatus.DELIVERED, 0),
            "cancelled": counts.get(RedemptionStatus.CANCELLED, 0),
        }
