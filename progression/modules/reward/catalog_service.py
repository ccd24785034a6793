"""
RewardCatalogService - Partner reward catalog
==============================================

Handles:
- Reward creation, visibility flags and default seeding
- Catalog reads: by category, featured, affordable, popular, search

Stock and per-user limits are `Unlimited | Bounded(n)` quantities; views
render them as `None` (unlimited) or the integer bound.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import func, or_, select

from progression.core.database.base import utc_now
from progression.core.logging.logger import get_logger
from progression.core.validation.input_validator import InputValidator
from progression.database.models import Account, Redemption, RewardItem
from progression.database.models.enums import RewardCategory
from progression.modules.reward.catalog import default_rewards
from progression.modules.shared.base_repository import BaseRepository
from progression.modules.shared.base_service import BaseService
from progression.modules.shared.constants import FEATURED_REWARDS_LIMIT, POPULAR_REWARDS_LIMIT
from progression.modules.shared.exceptions import NotFoundError, ValidationError
from progression.modules.shared.quantity import UNLIMITED, Quantity, coerce, to_optional
from progression.modules.shared.validators import validate_pagination, validate_text

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from progression.core.config.manager import ConfigManager
    from progression.core.database.service import DatabaseService
    from progression.core.event.bus import EventBus

CATALOG_MAX_LIMIT = 100


class RewardItemRepository(BaseRepository[RewardItem]):
    pass


def reward_view(reward: RewardItem, redemption_count: Optional[int] = None) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "id": reward.id,
        "title": reward.title,
        "description": reward.description,
        "category": reward.category.value,
        "brand": reward.brand,
        "point_cost": reward.point_cost,
        "stock_quantity": to_optional(reward.stock_quantity),
        "redemption_limit_per_user": to_optional(reward.redemption_limit_per_user),
        "image_url": reward.image_url,
        "terms": reward.terms,
        "expiry_date": reward.expiry_date,
        "is_active": reward.is_active,
        "is_featured": reward.is_featured,
        "metadata": reward.meta_data,
        "created_at": reward.created_at,
    }
    if redemption_count is not None:
        view["redemption_count"] = redemption_count
    return view


def _quantity(value: Any, field: str) -> Quantity:
    if value is None:
        return UNLIMITED
    if isinstance(value, int) and not isinstance(value, bool):
        InputValidator.validate_non_negative_integer(value, field)
    try:
        return coerce(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(field, str(exc)) from exc


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class RewardCatalogService(BaseService):
    """
    Reward catalog.

    Business Logic:
    - Only active rewards appear in catalog reads
    - Featured rewards list first, then newest
    - Rewards are never deleted; `is_active` hides them
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
        self._rewards = RewardItemRepository(
            RewardItem, get_logger(f"{__name__}.RewardItemRepository")
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _build_reward(self, data: Mapping[str, Any]) -> RewardItem:
        validate_text(data.get("title"), "title", max_length=200)
        validate_text(data.get("description"), "description", required=False, max_length=2000)
        validate_text(data.get("brand"), "brand", max_length=100)

        limit = data.get("redemption_limit_per_user", data.get("redemption_limit"))
        return RewardItem(
            title=InputValidator.validate_string(data["title"], "title", max_length=200),
            description=data.get("description") or "",
            category=InputValidator.validate_enum(
                data.get("category"), RewardCategory, "category"
            ),
            brand=InputValidator.validate_string(data["brand"], "brand", max_length=100),
            point_cost=InputValidator.validate_positive_integer(
                data.get("point_cost"), "point_cost"
            ),
            stock_quantity=_quantity(data.get("stock_quantity"), "stock_quantity"),
            redemption_limit_per_user=_quantity(limit, "redemption_limit_per_user"),
            image_url=InputValidator.validate_optional_string(
                data.get("image_url"), "image_url", max_length=500
            ),
            terms=data.get("terms"),
            expiry_date=data.get("expiry_date"),
            is_active=True,
            is_featured=bool(data.get("is_featured", False)),
            meta_data=InputValidator.validate_metadata(data.get("metadata")),
        )

    async def _redemption_counts(
        self, session: AsyncSession, reward_ids: Iterable[int]
    ) -> Dict[int, int]:
        ids = list(reward_ids)
        if not ids:
            return {}
        result = await session.execute(
            select(Redemption.reward_id, func.count(Redemption.id))
            .where(Redemption.reward_id.in_(ids))
            .group_by(Redemption.reward_id)
        )
        return {reward_id: int(count) for reward_id, count in result.all()}

    async def _views_with_counts(
        self, session: AsyncSession, rewards: List[RewardItem]
    ) -> List[Dict[str, Any]]:
        counts = await self._redemption_counts(session, (r.id for r in rewards))
        return [reward_view(r, counts.get(r.id, 0)) for r in rewards]

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_reward(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Add a reward to the catalog.

        Args:
            data: title, description, category, brand, point_cost and
                optionally stock_quantity, redemption_limit_per_user,
                image_url, terms, expiry_date, is_featured, metadata.
                Absent or None quantities mean unlimited.

        Raises:
            ValidationError: Missing or malformed fields
        """
        reward = self._build_reward(data)
        async with self._db.get_transaction() as session:
            self._rewards.add(session, reward)
            await self._rewards.flush(session)
            view = reward_view(reward, 0)

        await self.emit_event(
            "reward.created",
            {"reward_id": view["id"], "title": view["title"], "category": view["category"]},
        )
        self.log_operation("create_reward", reward_id=view["id"], title=view["title"])
        return view

    async def _set_flag(self, reward_id: int, column: str, value: bool) -> Dict[str, Any]:
        reward_id = InputValidator.validate_entity_id(reward_id, "reward_id")
        async with self._db.get_transaction() as session:
            updated = await self._rewards.update_where(
                session, RewardItem.id == reward_id, values={column: bool(value)}
            )
            if updated == 0:
                raise NotFoundError("Reward", reward_id)
            reward = await self._rewards.get(session, reward_id)
            await self._rewards.refresh(session, reward)
            view = reward_view(reward)

        self.log_operation(f"set_{column}", reward_id=reward_id, value=bool(value))
        return view

    async def set_reward_active(self, reward_id: int, is_active: bool) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Unknown reward
        """
        return await self._set_flag(reward_id, "is_active", is_active)

    async def set_reward_featured(self, reward_id: int, is_featured: bool) -> Dict[str, Any]:
        """
        Raises:
            NotFoundError: Unknown reward
        """
        return await self._set_flag(reward_id, "is_featured", is_featured)

    async def seed_rewards(self) -> List[Dict[str, Any]]:
        """Install the partner rewards that are not present yet (by title)."""
        created: List[Dict[str, Any]] = []
        async with self._db.get_transaction() as session:
            for data in default_rewards(self._clock()):
                if await self._rewards.exists(session, RewardItem.title == data["title"]):
                    continue
                reward = self._build_reward(data)
                self._rewards.add(session, reward)
                await self._rewards.flush(session)
                created.append(reward_view(reward, 0))

        for view in created:
            await self.emit_event(
                "reward.created",
                {"reward_id": view["id"], "title": view["title"], "category": view["category"]},
            )
        self.log_operation("seed_rewards", created_count=len(created))
        return created

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_reward_by_id(self, reward_id: int) -> Dict[str, Any]:
        """
        A reward (active or not) with its redemption count.

        Raises:
            NotFoundError: Unknown reward
        """
        reward_id = InputValidator.validate_entity_id(reward_id, "reward_id")
        async with self._db.get_session() as session:
            reward = await self._rewards.get(session, reward_id)
            if reward is None:
                raise NotFoundError("Reward", reward_id)
            counts = await self._redemption_counts(session, [reward_id])
        return reward_view(reward, counts.get(reward_id, 0))

    async def get_rewards(
        self,
        category: Optional[RewardCategory | str] = None,
        featured: Optional[bool] = None,
    ) -> List[Dict[str, Any]]:
        """Active rewards, featured first, then newest."""
        conditions = [RewardItem.is_active.is_(True)]
        if category is not None:
            category = InputValidator.validate_enum(category, RewardCategory, "category")
            conditions.append(RewardItem.category == category)
        if featured is not None:
            conditions.append(RewardItem.is_featured.is_(bool(featured)))

        async with self._db.get_session() as session:
            rewards = await self._rewards.find_many_where(
                session,
                *conditions,
                order_by=[
                    RewardItem.is_featured.desc(),
                    RewardItem.created_at.desc(),
                    RewardItem.id.desc(),
                ],
            )
            return await self._views_with_counts(session, rewards)

    async def get_featured_rewards(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Active featured rewards, newest first."""
        if limit is None:
            limit = int(self.get_config("rewards.featured_limit", FEATURED_REWARDS_LIMIT))
        limit, _ = validate_pagination(limit, 0, CATALOG_MAX_LIMIT)
        async with self._db.get_session() as session:
            rewards = await self._rewards.find_many_where(
                session,
                RewardItem.is_active.is_(True),
                RewardItem.is_featured.is_(True),
                order_by=[RewardItem.created_at.desc(), RewardItem.id.desc()],
                limit=limit,
            )
        return [reward_view(r) for r in rewards]

    async def get_affordable_rewards(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Active rewards the user can pay for now, cheapest first.

        A user without an account can afford nothing.
        """
        user_id = InputValidator.validate_user_id(user_id)
        async with self._db.get_session() as session:
            result = await session.execute(
                select(Account.available_points).where(Account.user_id == user_id)
            )
            available = result.scalar_one_or_none()
            if available is None:
                return []
            rewards = await self._rewards.find_many_where(
                session,
                RewardItem.is_active.is_(True),
                RewardItem.point_cost <= available,
                order_by=[RewardItem.point_cost.asc(), RewardItem.id.asc()],
            )
        return [reward_view(r) for r in rewards]

    async def get_popular_rewards(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Active rewards by redemption count, most redeemed first."""
        if limit is None:
            limit = int(self.get_config("rewards.popular_limit", POPULAR_REWARDS_LIMIT))
        limit, _ = validate_pagination(limit, 0, CATALOG_MAX_LIMIT)

        redemption_count = func.count(Redemption.id).label("redemption_count")
        stmt = (
            select(RewardItem, redemption_count)
            .outerjoin(Redemption, Redemption.reward_id == RewardItem.id)
            .where(RewardItem.is_active.is_(True))
            .group_by(RewardItem.id)
            .order_by(redemption_count.desc(), RewardItem.id.asc())
            .limit(limit)
        )
        async with self._db.get_session() as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [reward_view(reward, int(count)) for reward, count in rows]

    async def search_rewards(
        self, query: str, category: Optional[RewardCategory | str] = None
    ) -> List[Dict[str, Any]]:
        """
        Case-insensitive substring match on title, description and brand.

        Raises:
            ValidationError: Blank query
        """
        query = InputValidator.validate_string(query, "query", min_length=1, max_length=100)
        pattern = _like_pattern(query)
        conditions = [
            RewardItem.is_active.is_(True),
            or_(
                RewardItem.title.ilike(pattern, escape="\\"),
                RewardItem.description.ilike(pattern, escape="\\"),
                RewardItem.brand.ilike(pattern, escape="\\"),
            ),
        ]
        if category is not None:
            category = InputValidator.validate_enum(category, RewardCategory, "category")
            conditions.append(RewardItem.category == category)

        async with self._db.get_session() as session:
            rewards = await self._rewards.find_many_where(
                session,
                *conditions,
                order_by=[RewardItem.created_at.desc(), RewardItem.id.desc()],
            )
            return await self._views_with_counts(session, rewards)
