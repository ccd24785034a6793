"""
Service Container
=================

Purpose
-------
Dependency injection container for the progression services. Builds every
service once, in dependency order, from the injected infrastructure
(DatabaseService, ConfigManager, EventBus) and hands them out by property.

Responsibilities
----------------
- Construct services with their collaborators
- Own the challenge expiry scheduler's lifecycle
- Report initialization timing and a health snapshot

Non-Responsibilities
--------------------
- Infrastructure startup order (handled by main)
- Business logic

Architecture Notes
------------------
- Dependency order: ledger first; streak, challenge and redemption take the
  ledger; the activity hook takes ledger, challenge and streak services
- Every service shares the same DatabaseService, ConfigManager and
  EventBus instances; there are no module-level singletons
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from progression.core.database.base import utc_now
from progression.core.logging.logger import get_logger
from progression.modules.activity import ActivityHook
from progression.modules.challenge import ChallengeExpiryScheduler, ChallengeService
from progression.modules.leaderboard import LeaderboardService
from progression.modules.points import PointsLedgerService
from progression.modules.reward import RedemptionService, RewardCatalogService
from progression.modules.streak import StreakService

if TYPE_CHECKING:
    from logging import Logger

    from progression.core.config.manager import ConfigManager
    from progression.core.database.service import DatabaseService
    from progression.core.event.bus import EventBus

SERVICE_COUNT = 7


def _not_initialized() -> RuntimeError:
    return RuntimeError("ServiceContainer not initialized. Call initialize() first.")


class ServiceContainer:
    """
    Container for all progression services.

    Usage:
        container = ServiceContainer(database, config_manager, event_bus, logger)
        await container.initialize()

        await container.ledger.award_points("user-1", 50, "SESSION_COMPLETE")
        await container.activity_hook.on_journal_entry("user-1", entry_id=7)
    """

    def __init__(
        self,
        database: DatabaseService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._database = database
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._clock = clock

        self._ledger: Optional[PointsLedgerService] = None
        self._streaks: Optional[StreakService] = None
        self._challenges: Optional[ChallengeService] = None
        self._reward_catalog: Optional[RewardCatalogService] = None
        self._redemptions: Optional[RedemptionService] = None
        self._leaderboard: Optional[LeaderboardService] = None
        self._activity_hook: Optional[ActivityHook] = None
        self._expiry_scheduler: Optional[ChallengeExpiryScheduler] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def _create_service(self, name: str, cls: type, **dependencies: Any) -> Any:
        """
        Construct a service with the shared infrastructure plus `dependencies`.

        Raises:
            Exception: If service initialization fails
        """
        start = time.perf_counter()
        try:
            instance = cls(
                database=self._database,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
                **dependencies,
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def initialize(self) -> None:
        """Build every service. Idempotent."""
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            ledger = self._create_service("ledger", PointsLedgerService)
            self._ledger = ledger

            self._streaks = self._create_service(
                "streaks", StreakService, ledger=ledger, clock=self._clock
            )
            self._challenges = self._create_service(
                "challenges", ChallengeService, ledger=ledger, clock=self._clock
            )
            self._reward_catalog = self._create_service(
                "reward_catalog", RewardCatalogService, clock=self._clock
            )
            self._redemptions = self._create_service(
                "redemptions", RedemptionService, ledger=ledger, clock=self._clock
            )
            self._leaderboard = self._create_service(
                "leaderboard", LeaderboardService, clock=self._clock
            )

            start = time.perf_counter()
            self._activity_hook = ActivityHook(ledger, self._challenges, self._streaks)
            self._service_init_times["activity_hook"] = time.perf_counter() - start

            self._expiry_scheduler = ChallengeExpiryScheduler.from_config(
                self._challenges, self._config_manager
            )

            self._init_end = time.perf_counter()
            self._initialized = True

            self._logger.info(
                "Service container initialized successfully",
                extra={
                    "total_time_seconds": round(self._init_end - self._init_start, 3),
                    "service_count": len(self._service_init_times),
                },
            )
        except Exception as e:
            self._logger.critical(
                "Service container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

    def start_background_tasks(self) -> None:
        """Start the challenge expiry scheduler."""
        self.expiry_scheduler.start()
        self._logger.info(
            "Challenge expiry scheduler started",
            extra={"interval_seconds": self.expiry_scheduler.interval_seconds},
        )

    async def shutdown(self) -> None:
        """Stop background tasks. Safe to call more than once."""
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")
        if self._expiry_scheduler is not None:
            await self._expiry_scheduler.stop()

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, bool | float | int | None]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "total_init_time_seconds": (
                round(self._init_end - self._init_start, 3)
                if self._init_start and self._init_end
                else None
            ),
            "all_services_available": self._initialized
            and len(self._service_init_times) == SERVICE_COUNT,
            "expiry_scheduler_running": self._expiry_scheduler is not None
            and self._expiry_scheduler.is_running,
        }

    # ========================================================================
    # Services
    # ========================================================================

    @property
    def ledger(self) -> PointsLedgerService:
        if not self._initialized or self._ledger is None:
            raise _not_initialized()
        return self._ledger

    @property
    def streaks(self) -> StreakService:
        if not self._initialized or self._streaks is None:
            raise _not_initialized()
        return self._streaks

    @property
    def challenges(self) -> ChallengeService:
        if not self._initialized or self._challenges is None:
            raise _not_initialized()
        return self._challenges

    @property
    def reward_catalog(self) -> RewardCatalogService:
        if not self._initialized or self._reward_catalog is None:
            raise _not_initialized()
        return self._reward_catalog

    @property
    def redemptions(self) -> RedemptionService:
        if not self._initialized or self._redemptions is None:
            raise _not_initialized()
        return self._redemptions

    @property
    def leaderboard(self) -> LeaderboardService:
        if not self._initialized or self._leaderboard is None:
            raise _not_initialized()
        return self._leaderboard

    @property
    def activity_hook(self) -> ActivityHook:
        if not self._initialized or self._activity_hook is None:
            raise _not_initialized()
        return self._activity_hook

    @property
    def expiry_scheduler(self) -> ChallengeExpiryScheduler:
        if not self._initialized or self._expiry_scheduler is None:
            raise _not_initialized()
        return self._expiry_scheduler

    @property
    def is_initialized(self) -> bool:
        """Check if container is initialized."""
        return self._initialized
