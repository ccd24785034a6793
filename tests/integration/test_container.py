"""
Integration tests for ServiceContainer.

Test Coverage
-------------
- Lifecycle: initialize, health check, shutdown
- Service access before initialization
- Background expiry scheduler start and stop
"""

import pytest

from progression.core.logging.logger import get_logger
from progression.core.services.container import SERVICE_COUNT, ServiceContainer
from progression.modules.activity import ActivityHook
from progression.modules.points.service import PointsLedgerService

pytestmark = pytest.mark.integration


class TestContainerLifecycle:
    """Test container construction and teardown."""

    async def test_health_after_initialize(self, container):
        health = await container.health_check()

        assert health["initialized"] is True
        assert health["service_count"] == SERVICE_COUNT
        assert health["all_services_available"] is True
        assert health["expiry_scheduler_running"] is False
        assert health["total_init_time_seconds"] is not None

    async def test_services_are_shared(self, container):
        assert isinstance(container.ledger, PointsLedgerService)
        assert isinstance(container.activity_hook, ActivityHook)
        assert container.streaks._ledger is container.ledger
        assert container.redemptions._ledger is container.ledger

    @pytest.mark.parametrize(
        "name",
        [
            "ledger",
            "streaks",
            "challenges",
            "reward_catalog",
            "redemptions",
            "leaderboard",
            "activity_hook",
            "expiry_scheduler",
        ],
    )
    async def test_properties_raise_before_initialize(
        self, database, config_manager, event_bus, name
    ):
        services = ServiceContainer(
            database, config_manager, event_bus, get_logger("tests.container")
        )

        assert services.is_initialized is False
        with pytest.raises(RuntimeError):
            getattr(services, name)

    async def test_initialize_is_idempotent(self, container):
        ledger = container.ledger

        await container.initialize()

        assert container.ledger is ledger

    async def test_background_scheduler(self, container):
        container.start_background_tasks()
        assert (await container.health_check())["expiry_scheduler_running"] is True

        await container.shutdown()

        health = await container.health_check()
        assert health["initialized"] is False
        assert health["expiry_scheduler_running"] is False
        with pytest.raises(RuntimeError):
            container.ledger
