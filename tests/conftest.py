"""
Pytest Configuration and Fixtures for the Progression Engine Tests
===================================================================

Purpose
-------
Centralized fixtures for the progression test suite: a real database per
test, the real EventBus and ConfigManager, every service wired through the
ServiceContainer, a controllable clock and catalog factories.

Responsibilities
----------------
- Per-test SQLite database (aiosqlite) through DatabaseService
- PostgreSQL through testcontainers when PROGRESSION_TEST_DATABASE=postgres
- Event capture for asserting change signals
- Mock fixtures for unit tests

Architecture Notes
------------------
- Unit tests use mocks (fast, isolated)
- Integration tests use the same DatabaseService production code uses
- Every integration test starts from an empty schema
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Generator, List, Optional

import pytest
import pytest_asyncio

from progression.core.config.config import Config
from progression.core.config.manager import ConfigManager
from progression.core.database.base import utc_now
from progression.core.database.service import DatabaseService
from progression.core.event.bus import EventBus
from progression.core.logging.logger import get_logger
from progression.core.services.container import ServiceContainer
from progression.database.models.enums import (
    ChallengeCategory,
    ChallengeType,
    Difficulty,
    RewardCategory,
)

logger = get_logger(__name__)

PROJECT_CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

EVENT_NAMES = [
    "points.balance_changed",
    "streak.checked_in",
    "streak.freeze_used",
    "challenge.created",
    "challenge.enrolled",
    "challenge.progressed",
    "challenge.completed",
    "challenge.expired",
    "reward.created",
    "reward.redeemed",
    "reward.redemption_cancelled",
    "reward.redemption_status_changed",
]


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ["ENVIRONMENT"] = "testing"
    Config.load()


def _use_postgres() -> bool:
    return os.getenv("PROGRESSION_TEST_DATABASE", "sqlite").lower() == "postgres"


# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """
    Clock pinned to noon UTC today.

    Noon keeps hour-level moves inside the same calendar day.
    """
    return FakeClock(utc_now().replace(hour=12, minute=0, second=0, microsecond=0))


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_url() -> Generator[Optional[str], None, None]:
    """
    PostgreSQL testcontainer URL, or None when running on SQLite.

    Scope: session (container persists across all tests)
    """
    if not _use_postgres():
        yield None
        return

    from testcontainers.postgres import PostgresContainer

    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(image="postgres:17-alpine", driver="asyncpg")
    container.start()
    url = container.get_connection_url().replace("psycopg2", "asyncpg")
    logger.info("PostgreSQL testcontainer started")

    yield url

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


# ============================================================================
# DATABASE FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture
def database_url(tmp_path: Path, postgres_url: Optional[str]) -> str:
    if postgres_url is not None:
        return postgres_url
    return f"sqlite+aiosqlite:///{tmp_path / 'progression.db'}"


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncGenerator[DatabaseService, None]:
    """
    Initialized DatabaseService with an empty schema.

    Scope: function (clean slate per test)
    """
    service = DatabaseService(database_url, testing=True)
    await service.initialize()
    if service.dialect_name == "postgresql":
        await service.drop_schema()
    await service.create_schema()

    yield service

    await service.shutdown()


# ============================================================================
# INFRASTRUCTURE FIXTURES
# ============================================================================


@pytest.fixture
def config_manager() -> ConfigManager:
    """The shipped economy tunables; tests override with `set()`."""
    return ConfigManager(config_dir=PROJECT_CONFIG_DIR).load()


@pytest.fixture
def event_bus(config_manager: ConfigManager) -> EventBus:
    return EventBus(config_manager=config_manager)


@dataclass
class RecordedEvent:
    name: str
    payload: Dict[str, Any]


@dataclass
class EventRecorder:
    """Captures every progression event published on a bus."""

    events: List[RecordedEvent] = field(default_factory=list)

    def attach(self, bus: EventBus) -> None:
        for name in EVENT_NAMES:
            bus.subscribe(name, self._listener(name), identifier=f"test-recorder@{name}")

    def _listener(self, name: str) -> Callable[[Dict[str, Any]], Awaitable[None]]:
        async def record(payload: Dict[str, Any]) -> None:
            self.events.append(RecordedEvent(name, dict(payload)))

        return record

    def named(self, name: str) -> List[Dict[str, Any]]:
        return [event.payload for event in self.events if event.name == name]

    def names(self) -> List[str]:
        return [event.name for event in self.events]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def events(event_bus: EventBus) -> EventRecorder:
    recorder = EventRecorder()
    recorder.attach(event_bus)
    return recorder


# ============================================================================
# SERVICE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def container(
    database: DatabaseService,
    config_manager: ConfigManager,
    event_bus: EventBus,
    events: EventRecorder,
    clock: FakeClock,
) -> AsyncGenerator[ServiceContainer, None]:
    services = ServiceContainer(
        database=database,
        config_manager=config_manager,
        event_bus=event_bus,
        logger=get_logger("tests.container"),
        clock=clock,
    )
    await services.initialize()

    yield services

    await services.shutdown()
    await event_bus.drain()


@pytest.fixture
def ledger(container: ServiceContainer):
    return container.ledger


@pytest.fixture
def streaks(container: ServiceContainer):
    return container.streaks


@pytest.fixture
def challenges(container: ServiceContainer):
    return container.challenges


@pytest.fixture
def reward_catalog(container: ServiceContainer):
    return container.reward_catalog


@pytest.fixture
def redemptions(container: ServiceContainer):
    return container.redemptions


@pytest.fixture
def leaderboard(container: ServiceContainer):
    return container.leaderboard


@pytest.fixture
def activity_hook(container: ServiceContainer):
    return container.activity_hook


# ============================================================================
# CATALOG FACTORIES
# ============================================================================


@pytest.fixture
def make_challenge(challenges) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Create a challenge template; keyword arguments override the defaults."""

    async def factory(**overrides: Any) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": "Test Challenge",
            "description": "Do the thing five times",
            "type": ChallengeType.WEEKLY,
            "category": ChallengeCategory.WELLNESS,
            "difficulty": Difficulty.MEDIUM,
            "required_count": 5,
            "point_reward": 100,
        }
        data.update(overrides)
        return await challenges.create_challenge(data)

    return factory


@pytest.fixture
def make_reward(reward_catalog) -> Callable[..., Awaitable[Dict[str, Any]]]:
    """Create a catalog reward; keyword arguments override the defaults."""

    async def factory(**overrides: Any) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": "Test Reward",
            "description": "A reward for testing",
            "category": RewardCategory.WELLNESS_PRODUCT,
            "brand": "Kaya Wellness",
            "point_cost": 500,
        }
        data.update(overrides)
        return await reward_catalog.create_reward(data)

    return factory


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def mock_config_manager(mocker):
    """
    Mock ConfigManager that returns the caller's default for every key.

    Scope: function
    """
    mock_config = mocker.MagicMock()
    mock_config.get = mocker.MagicMock(side_effect=lambda key, default=None: default)
    return mock_config
