"""
Base Repository Pattern

Purpose
-------
Provides a type-safe, generic repository abstraction for database operations
following SQLAlchemy 2.0 async patterns. Repositories encapsulate data access
and give services a consistent interface for reads, inserts and atomic
conditional updates.

Design Notes
------------
This base repository provides:
- Type-safe reads with optional ordering, paging and eager loading
- Pessimistic locking support (get_for_update, for_update=True)
- `update_where`: a single `UPDATE ... WHERE <guard>` returning the rowcount,
  the compare-and-set primitive used for balances, stock and status moves
- Existence/counting utilities
- Structured debug logging for every call

What this class does NOT do:
- Manage transactions (services/DatabaseService handle that)
- Contain business logic

Usage
-----
    class EnrollmentRepository(BaseRepository[ChallengeEnrollment]):
        pass

    rows = await repo.update_where(
        session,
        ChallengeEnrollment.id == enrollment_id,
        ChallengeEnrollment.status == EnrollmentStatus.ACTIVE,
        values={"status": EnrollmentStatus.COMPLETED},
    )
"""

from __future__ import annotations

from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Generic,
    List,
    Optional,
    Sequence,
    Type,
    TypeVar,
)

from sqlalchemy import func, select, update
from sqlalchemy.orm import selectinload

from progression.core.logging.logger import log_extra

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import InstrumentedAttribute

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository for type-safe database operations.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    def _debug(self, operation: str, **context: Any) -> None:
        self.log.debug(
            f"Repository.{operation}: {self.model_class.__name__}",
            extra=log_extra({"model": self.model_class.__name__, **context}),
        )

    async def get(
        self,
        session: AsyncSession,
        id_value: Any,
        eager_load: Optional[List[InstrumentedAttribute]] = None,
    ) -> Optional[T]:
        """
        Get a single record by primary key (no lock).

        Args:
            session: Database session
            id_value: Primary key value
            eager_load: Optional list of relationships to eagerly load

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model_class).where(
            self.model_class.id == id_value  # type: ignore[attr-defined]
        )
        for relationship in eager_load or []:
            stmt = stmt.options(selectinload(relationship))

        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()
        self._debug("get", id=id_value, found=instance is not None)
        return instance

    async def get_for_update(
        self,
        session: AsyncSession,
        id_value: Any,
        eager_load: Optional[List[InstrumentedAttribute]] = None,
    ) -> Optional[T]:
        """
        Get a single record by primary key with SELECT FOR UPDATE lock.

        Returns:
            Model instance or None if not found
        """
        stmt = (
            select(self.model_class)
            .where(self.model_class.id == id_value)  # type: ignore[attr-defined]
            .with_for_update()
        )
        for relationship in eager_load or []:
            stmt = stmt.options(selectinload(relationship))

        result = await session.execute(stmt)
        instance = result.scalar_one_or_none()
        self._debug("get_for_update", id=id_value, found=instance is not None, locked=True)
        return instance

    async def find_one_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        eager_load: Optional[List[InstrumentedAttribute]] = None,
        for_update: bool = False,
    ) -> Optional[T]:
        """
        Find a single record matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            eager_load: Optional list of relationships to eagerly load
            for_update: If True, use SELECT FOR UPDATE

        Returns:
            Model instance or None if not found
        """
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()
        for relationship in eager_load or []:
            stmt = stmt.options(selectinload(relationship))

        result = await session.execute(stmt)
        instance = result.scalars().first()
        self._debug("find_one_where", found=instance is not None, locked=for_update)
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        eager_load: Optional[List[InstrumentedAttribute]] = None,
        for_update: bool = False,
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[T]:
        """
        Find multiple records matching conditions.

        Args:
            session: Database session
            *conditions: SQLAlchemy filter conditions
            eager_load: Optional list of relationships to eagerly load
            for_update: If True, use SELECT FOR UPDATE
            order_by: Optional ordering clauses
            limit: Optional maximum number of results
            offset: Optional number of rows to skip

        Returns:
            List of model instances
        """
        stmt = select(self.model_class).where(*conditions)
        if for_update:
            stmt = stmt.with_for_update()
        for relationship in eager_load or []:
            stmt = stmt.options(selectinload(relationship))
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        result = await session.execute(stmt)
        instances = list(result.scalars().all())
        self._debug(
            "find_many_where",
            found_count=len(instances),
            locked=for_update,
            limit=limit,
            offset=offset,
        )
        return instances

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        """Check if any record matching conditions exists."""
        count = await self.count(session, *conditions)
        return count > 0

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        """Count records matching conditions."""
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        count = result.scalar_one()
        self._debug("count", count=count)
        return count

    async def update_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        values: Dict[str, Any],
    ) -> int:
        """
        Apply `values` to every row matching `conditions` in one statement.

        The WHERE clause is the guard: a concurrent writer that already moved
        the row out of the guarded state makes this return 0.

        Args:
            session: Database session
            *conditions: Guard conditions (key plus expected state)
            values: Column assignments; SQL expressions such as
                `Model.col + 1` are evaluated by the database

        Returns:
            Number of rows updated
        """
        stmt = (
            update(self.model_class)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        rowcount = result.rowcount or 0
        self._debug("update_where", columns=sorted(values.keys()), rowcount=rowcount)
        return rowcount

    def add(self, session: AsyncSession, instance: T) -> T:
        """Add a new instance to the session."""
        session.add(instance)
        self._debug("add")
        return instance

    async def flush(self, session: AsyncSession) -> None:
        """Flush pending changes to the database."""
        await session.flush()
        self._debug("flush")

    async def refresh(
        self,
        session: AsyncSession,
        instance: T,
        attribute_names: Optional[List[str]] = None,
    ) -> T:
        """
        Reload an instance from the database.

        Needed after `update_where`, which bypasses the identity map.
        """
        await session.refresh(instance, attribute_names=attribute_names)
        self._debug("refresh", attributes=attribute_names)
        return instance
