"""
Database Service - Core Infrastructure Layer

Purpose
-------
Async database engine and session management for the progression engine.
Provides atomic transactions, pessimistic locking, schema bootstrap and
health checks.

Responsibilities
----------------
- Own one AsyncEngine and session factory per service instance
- Provide async context managers for read sessions and atomic transactions
- Enforce transaction discipline: commit on success, rollback on exception
- Establish the per-account write boundary:
  - PostgreSQL: `SELECT ... FOR UPDATE` row locks plus a statement timeout
  - SQLite: every transaction opens with `BEGIN IMMEDIATE` (single writer)
- Expose health checks and transaction counters

Non-Responsibilities
--------------------
- Domain logic or event emission
- Migrations (schema is created from model metadata)

Architecture Notes
------------------
**Dependency injection**: `DatabaseService` is an instance constructed once
at process start (see `progression.main`) and handed to every
service. Nothing in the package reaches for a global engine.

**Transaction Model**:
- `get_transaction()` is the interface for all state mutations
- Never call `session.commit()` inside service code
- A cancelled task closes its session without committing, which rolls back

**Connection Pooling**:
- AsyncAdaptedQueuePool for PostgreSQL outside tests
- NullPool for tests and for SQLite (one connection per session)

Usage Example
-------------
>>> database = DatabaseService(url="sqlite+aiosqlite:///./progression.db")
>>> await database.initialize()
>>> async with database.get_transaction() as session:
...     account = await database.get_locked_entity(session, Account, account_id)
...     ...
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Optional, Type, TypeVar

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool, Pool

from progression.core.config.config import Config
from progression.core.database.base import Base
from progression.core.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SQLITE_BUSY_TIMEOUT_SECONDS = 30


# ============================================================================
# Domain Exceptions
# ============================================================================


class DatabaseInitializationError(RuntimeError):
    """Raised when database engine initialization fails."""


class DatabaseNotInitializedError(RuntimeError):
    """Raised when database operations are attempted before initialization."""


# ============================================================================
# Configuration Snapshot & Metrics
# ============================================================================


@dataclass(frozen=True)
class _DatabaseConfigSnapshot:
    """Immutable view of the engine configuration for its lifetime."""

    url: str
    echo: bool
    pool_class: Type[Pool]
    pool_size: int
    max_overflow: int
    pool_recycle: int
    pool_timeout: int
    statement_timeout_ms: int

    @property
    def is_postgres(self) -> bool:
        return self.url.startswith("postgresql")

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def url_scheme(self) -> str:
        return self.url.split(":", 1)[0] if ":" in self.url else "unknown"


@dataclass
class DatabaseMetrics:
    transactions_started: int = 0
    transactions_committed: int = 0
    transactions_rolled_back: int = 0
    rollback_errors: dict[str, int] = field(default_factory=dict)
    health_checks: int = 0
    health_check_failures: int = 0
    total_transaction_ms: float = 0.0

    def record_rollback(self, error_type: str, duration_ms: float) -> None:
        self.transactions_rolled_back += 1
        self.rollback_errors[error_type] = self.rollback_errors.get(error_type, 0) + 1
        self.total_transaction_ms += duration_ms

    def to_dict(self) -> dict[str, Any]:
        finished = self.transactions_committed + self.transactions_rolled_back
        return {
            "transactions_started": self.transactions_started,
            "transactions_committed": self.transactions_committed,
            "transactions_rolled_back": self.transactions_rolled_back,
            "rollback_errors": dict(self.rollback_errors),
            "avg_transaction_ms": round(self.total_transaction_ms / finished, 3)
            if finished
            else 0.0,
            "health_checks": self.health_checks,
            "health_check_failures": self.health_check_failures,
        }


# ============================================================================
# DatabaseService
# ============================================================================


class DatabaseService:
    """
    Async engine and session management.

    Public API
    ----------
    **Lifecycle**: initialize(), shutdown(), create_schema(), drop_schema()
    **Sessions**: get_session() (reads), get_transaction() (writes)
    **Utilities**: health_check(), get_locked_entity(), get_metrics()
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        echo: Optional[bool] = None,
        testing: Optional[bool] = None,
    ) -> None:
        self._url = url
        self._echo = echo
        self._testing = testing
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._config_snapshot: Optional[_DatabaseConfigSnapshot] = None
        self._init_lock = asyncio.Lock()
        self.metrics = DatabaseMetrics()

    # ========================================================================
    # Initialization & Shutdown
    # ========================================================================

    def _build_config_snapshot(self) -> _DatabaseConfigSnapshot:
        """
        Build an immutable configuration snapshot from arguments and Config.

        Raises
        ------
        DatabaseInitializationError
            If the database URL is missing or uses an unsupported driver.
        """
        database_url = self._url or Config.DATABASE_URL
        if not database_url or not isinstance(database_url, str):
            logger.error("DATABASE_URL is not configured or invalid")
            raise DatabaseInitializationError(
                "DATABASE_URL must be configured as a non-empty string"
            )
        if not database_url.startswith(("postgresql", "sqlite")):
            raise DatabaseInitializationError(
                f"Unsupported database URL scheme: {database_url.split(':', 1)[0]}"
            )

        is_testing = self._testing if self._testing is not None else Config.is_testing()
        use_null_pool = is_testing or database_url.startswith("sqlite")

        snapshot = _DatabaseConfigSnapshot(
            url=database_url,
            echo=self._echo if self._echo is not None else Config.DATABASE_ECHO,
            pool_class=NullPool if use_null_pool else AsyncAdaptedQueuePool,
            pool_size=Config.DATABASE_POOL_SIZE,
            max_overflow=Config.DATABASE_MAX_OVERFLOW,
            pool_recycle=Config.DATABASE_POOL_RECYCLE,
            pool_timeout=Config.DATABASE_POOL_TIMEOUT,
            statement_timeout_ms=Config.DATABASE_STATEMENT_TIMEOUT_MS,
        )

        logger.debug(
            "Database configuration snapshot created",
            extra={
                "url_scheme": snapshot.url_scheme,
                "pool_class": snapshot.pool_class.__name__,
                "pool_size": snapshot.pool_size,
                "statement_timeout_ms": snapshot.statement_timeout_ms,
                "is_testing": is_testing,
            },
        )
        return snapshot

    @staticmethod
    def _install_sqlite_write_boundary(engine: AsyncEngine) -> None:
        """
        Make every SQLite transaction take the write lock up front.

        pysqlite's implicit deferred BEGIN lets two writers both read and
        then deadlock on upgrade. Disabling it and emitting BEGIN IMMEDIATE
        serializes writers, which is the per-account boundary on SQLite.
        """

        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _on_begin(conn: Any) -> None:
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    async def initialize(self) -> None:
        """
        Initialize the engine and session factory. Idempotent.

        Raises
        ------
        DatabaseInitializationError
            If configuration is invalid or engine creation fails.
        """
        async with self._init_lock:
            if self._engine is not None:
                logger.debug("DatabaseService already initialized; skipping")
                return

            logger.info("Initializing DatabaseService")

            try:
                config = self._build_config_snapshot()

                engine_kwargs: dict[str, Any] = {
                    "echo": config.echo,
                    "poolclass": config.pool_class,
                }
                if config.pool_class is AsyncAdaptedQueuePool:
                    engine_kwargs.update(
                        {
                            "pool_size": config.pool_size,
                            "max_overflow": config.max_overflow,
                            "pool_recycle": config.pool_recycle,
                            "pool_timeout": config.pool_timeout,
                            "pool_pre_ping": True,
                        }
                    )
                if config.is_sqlite:
                    # Seconds a writer waits for the lock before "database is locked"
                    engine_kwargs["connect_args"] = {"timeout": SQLITE_BUSY_TIMEOUT_SECONDS}

                engine = create_async_engine(config.url, **engine_kwargs)
                if config.is_sqlite:
                    self._install_sqlite_write_boundary(engine)

                self._engine = engine
                self._config_snapshot = config
                self._session_factory = async_sessionmaker(
                    bind=engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )

                logger.info(
                    "DatabaseService initialized successfully",
                    extra={
                        "url_scheme": config.url_scheme,
                        "pool_class": config.pool_class.__name__,
                    },
                )

            except Exception as exc:
                logger.error(
                    "DatabaseService initialization failed",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "config_error": isinstance(exc, DatabaseInitializationError),
                    },
                    exc_info=True,
                )
                if isinstance(exc, DatabaseInitializationError):
                    raise
                raise DatabaseInitializationError(
                    f"Database initialization failed: {exc}"
                ) from exc

    async def shutdown(self) -> None:
        """Dispose the engine. Safe to call multiple times."""
        async with self._init_lock:
            if self._engine is None:
                logger.debug("DatabaseService not initialized; nothing to shutdown")
                return

            logger.info("Shutting down DatabaseService")
            try:
                await self._engine.dispose()
                logger.info(
                    "DatabaseService shutdown complete",
                    extra=self.metrics.to_dict(),
                )
            finally:
                self._engine = None
                self._session_factory = None
                self._config_snapshot = None

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def dialect_name(self) -> str:
        return self._require_engine().dialect.name

    # ========================================================================
    # Schema
    # ========================================================================

    async def create_schema(self) -> None:
        """Create all tables registered on the declarative metadata."""
        # Registers every model on Base.metadata
        import progression.database.models  # noqa: F401

        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(
            "Database schema created",
            extra={"table_count": len(Base.metadata.tables)},
        )

    async def drop_schema(self) -> None:
        import progression.database.models  # noqa: F401

        engine = self._require_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("Database schema dropped")

    # ========================================================================
    # Health Check
    # ========================================================================

    async def health_check(self) -> bool:
        """
        Lightweight `SELECT 1` reachability check.

        Never raises; returns False on failure.
        """
        self.metrics.health_checks += 1

        if self._engine is None:
            logger.warning("Health check called on uninitialized DatabaseService")
            self.metrics.health_check_failures += 1
            return False

        start = time.perf_counter()
        success = False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            success = True
            return True
        except (OperationalError, DBAPIError, OSError) as exc:
            logger.warning(
                "Database health check failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            self.metrics.health_check_failures += 1
            return False
        finally:
            logger.debug(
                "Database health check completed",
                extra={
                    "success": success,
                    "duration_ms": (time.perf_counter() - start) * 1000.0,
                },
            )

    def get_metrics(self) -> dict[str, Any]:
        return self.metrics.to_dict()

    # ========================================================================
    # Session & Transaction Context Managers
    # ========================================================================

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            logger.error("DatabaseService operation attempted before initialization")
            raise DatabaseNotInitializedError(
                "DatabaseService must be initialized before use. "
                "Call initialize() during startup."
            )
        return self._engine

    def _require_factory(self) -> async_sessionmaker[AsyncSession]:
        self._require_engine()
        assert self._session_factory is not None
        return self._session_factory

    async def _apply_statement_timeout(self, session: AsyncSession) -> None:
        config = self._config_snapshot
        if config is not None and config.is_postgres:
            await session.execute(
                text(f"SET LOCAL statement_timeout = {int(config.statement_timeout_ms)}")
            )

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session without automatic commit, for reads.

        For writes use `get_transaction()`.
        """
        factory = self._require_factory()
        start = time.perf_counter()

        async with factory() as session:
            try:
                await self._apply_statement_timeout(session)
                yield session
            finally:
                await session.close()
                logger.debug(
                    "Database session closed",
                    extra={"duration_ms": (time.perf_counter() - start) * 1000.0},
                )

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Session wrapped in an atomic transaction.

        Commits when the block exits normally; rolls back and re-raises on
        any exception, so a raised domain error leaves no partial write.

        Example
        -------
        >>> async with database.get_transaction() as session:
        ...     await session.execute(update(Account).values(...))
        """
        factory = self._require_factory()
        start = time.perf_counter()
        self.metrics.transactions_started += 1

        async with factory() as session:
            try:
                await self._apply_statement_timeout(session)
                yield session
                await session.commit()

                duration_ms = (time.perf_counter() - start) * 1000.0
                self.metrics.transactions_committed += 1
                self.metrics.total_transaction_ms += duration_ms
                logger.debug(
                    "Database transaction committed",
                    extra={"duration_ms": duration_ms},
                )

            except (OperationalError, DBAPIError) as exc:
                await session.rollback()
                duration_ms = (time.perf_counter() - start) * 1000.0
                self.metrics.record_rollback(type(exc).__name__, duration_ms)
                logger.error(
                    "Database error in transaction; rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": duration_ms,
                    },
                    exc_info=True,
                )
                raise

            except Exception as exc:
                await session.rollback()
                duration_ms = (time.perf_counter() - start) * 1000.0
                self.metrics.record_rollback(type(exc).__name__, duration_ms)
                # Domain errors are expected control flow; callers log them
                logger.debug(
                    "Transaction rolled back",
                    extra={
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                        "duration_ms": duration_ms,
                    },
                )
                raise

            finally:
                await session.close()

    # ========================================================================
    # Pessimistic Locking Helper
    # ========================================================================

    async def get_locked_entity(
        self,
        session: AsyncSession,
        model: Type[T],
        primary_key: Any,
    ) -> Optional[T]:
        """
        Fetch an entity with `SELECT ... FOR UPDATE`.

        On SQLite the clause is ignored; the surrounding BEGIN IMMEDIATE
        already holds the write lock.
        """
        return await session.get(model, primary_key, with_for_update=True)
