"""
Integration Tests for DatabaseService
=====================================

Purpose
-------
Test database operations against a real database: SQLite by default,
PostgreSQL through testcontainers when PROGRESSION_TEST_DATABASE=postgres.
Verifies session and transaction management, schema creation and the
lifecycle guards.

Test Coverage
-------------
- Database connection and health check
- Transaction commit and rollback
- Schema creation
- Pessimistic locking helper
- Lifecycle errors (uninitialized, unsupported URL)

Testing Strategy
----------------
- Integration tests (real engine, no mocks)
- Each test gets a fresh schema from the `database` fixture
"""

import pytest
from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import IntegrityError

from progression.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)
from progression.database.models import Account


# ============================================================================
# DATABASE CONNECTION TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseConnection:
    """Test database connection and basic operations."""

    async def test_database_connection(self, database):
        """Test that we can connect to the database."""
        # Act
        async with database.get_session() as session:
            result = await session.execute(text("SELECT 1 as value"))
            row = result.fetchone()

        # Assert
        assert row is not None
        assert row.value == 1

    async def test_health_check(self, database):
        """Test the reachability check on a live engine."""
        assert await database.health_check() is True
        assert database.get_metrics()["health_checks"] == 1

    async def test_database_schema_created(self, database):
        """Test that every progression table exists."""
        # Act
        async with database.get_session() as session:
            connection = await session.connection()
            tables = await connection.run_sync(
                lambda sync_conn: set(inspect(sync_conn).get_table_names())
            )

        # Assert
        assert {
            "accounts",
            "point_transactions",
            "streak_records",
            "challenge_templates",
            "challenge_enrollments",
            "reward_items",
            "redemptions",
        } <= tables


# ============================================================================
# TRANSACTION TESTS
# ============================================================================


async def _account_count(database, user_id):
    async with database.get_session() as session:
        result = await session.execute(
            select(func.count()).select_from(Account).where(Account.user_id == user_id)
        )
        return result.scalar_one()


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseTransactions:
    """Test transaction management and isolation."""

    async def test_transaction_commit(self, database):
        """Test that a clean exit commits."""
        # Act
        async with database.get_transaction() as session:
            session.add(Account(user_id="commit-user"))

        # Assert
        assert await _account_count(database, "commit-user") == 1
        assert database.get_metrics()["transactions_committed"] == 1

    async def test_transaction_rollback_on_exception(self, database):
        """Test that an exception inside the block rolls everything back."""
        # Act
        with pytest.raises(ValueError):
            async with database.get_transaction() as session:
                session.add(Account(user_id="rollback-user"))
                await session.flush()
                raise ValueError("abort")

        # Assert
        assert await _account_count(database, "rollback-user") == 0
        metrics = database.get_metrics()
        assert metrics["transactions_rolled_back"] == 1
        assert metrics["rollback_errors"] == {"ValueError": 1}

    async def test_unique_constraint_violation(self, database):
        """Test that a duplicate user_id is rejected and rolled back."""
        # Arrange
        async with database.get_transaction() as session:
            session.add(Account(user_id="dup-user"))

        # Act & Assert
        with pytest.raises(IntegrityError):
            async with database.get_transaction() as session:
                session.add(Account(user_id="dup-user"))

        assert await _account_count(database, "dup-user") == 1

    async def test_get_locked_entity(self, database):
        """Test fetching a row under the write lock."""
        # Arrange
        async with database.get_transaction() as session:
            account = Account(user_id="locked-user")
            session.add(account)
            await session.flush()
            account_id = account.id

        # Act
        async with database.get_transaction() as session:
            locked = await database.get_locked_entity(session, Account, account_id)
            missing = await database.get_locked_entity(session, Account, account_id + 1)

        # Assert
        assert locked is not None
        assert locked.user_id == "locked-user"
        assert missing is None


# ============================================================================
# LIFECYCLE TESTS
# ============================================================================


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseLifecycle:
    """Test initialization guards and shutdown."""

    async def test_uninitialized_service_refuses_sessions(self):
        service = DatabaseService("sqlite+aiosqlite:///:memory:")

        assert service.is_initialized is False
        with pytest.raises(DatabaseNotInitializedError):
            async with service.get_session():
                pass

    async def test_health_check_on_uninitialized_service(self):
        service = DatabaseService("sqlite+aiosqlite:///:memory:")

        assert await service.health_check() is False
        assert service.get_metrics()["health_check_failures"] == 1

    async def test_unsupported_url(self):
        service = DatabaseService("mysql+aiomysql://localhost/progression")

        with pytest.raises(DatabaseInitializationError):
            await service.initialize()
        assert service.is_initialized is False

    async def test_initialize_and_shutdown_are_idempotent(self, database_url):
        service = DatabaseService(database_url, testing=True)

        await service.initialize()
        await service.initialize()
        assert service.is_initialized is True

        await service.shutdown()
        await service.shutdown()
        assert service.is_initialized is False
