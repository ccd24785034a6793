"""
Kaya Progression - Process Entry Point
======================================

Bootstrap
---------
- Config validation and logging
- Database initialization and schema
- ConfigManager (economy tunables) and EventBus
- Service container, catalog seeding, challenge expiry scheduler
- Graceful shutdown on SIGINT/SIGTERM
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Optional

from progression.core.config.config import Config
from progression.core.config.manager import ConfigManager
from progression.core.database.service import DatabaseService
from progression.core.event.bus import EventBus
from progression.core.logging.logger import get_logger, setup_logging, shutdown_logging
from progression.core.services.container import ServiceContainer

logger = get_logger(__name__)


class Application:
    """Infrastructure and services owned by one running process."""

    def __init__(self) -> None:
        self.database: Optional[DatabaseService] = None
        self.event_bus: Optional[EventBus] = None
        self.container: Optional[ServiceContainer] = None


# ============================================================================
# Application Bootstrap
# ============================================================================


async def _startup(app: Application) -> None:
    """Initialize all infrastructure components, then the services."""
    logger.info("========== KAYA PROGRESSION INITIALIZATION START ==========")

    # Step 1: Validate configuration early
    try:
        Config.validate()
        logger.info("✓ Configuration validated")
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    # Step 2: Initialize database service
    try:
        app.database = DatabaseService()
        await app.database.initialize()
        await app.database.create_schema()
        logger.info("✓ Database service initialized")
    except Exception as exc:
        logger.critical(f"Database initialization failed: {exc}", exc_info=True)
        raise

    # Step 3: Load economy tunables
    try:
        config_manager = ConfigManager(config_dir=Config.CONFIG_DIR).load()
        logger.info("✓ Config manager initialized")
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        raise

    # Step 4: Event bus
    app.event_bus = EventBus(config_manager=config_manager)
    logger.info("✓ Event bus available")

    # Step 5: Initialize service container
    try:
        app.container = ServiceContainer(
            database=app.database,
            config_manager=config_manager,
            event_bus=app.event_bus,
            logger=get_logger("progression.core.services.container"),
        )
        await app.container.initialize()
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    # Step 6: Seed default catalogs
    try:
        challenges = await app.container.challenges.seed_challenges()
        rewards = await app.container.reward_catalog.seed_rewards()
        logger.info(
            "✓ Catalogs seeded",
            extra={"challenges_created": len(challenges), "rewards_created": len(rewards)},
        )
    except Exception as exc:
        logger.critical(f"Catalog seeding failed: {exc}", exc_info=True)
        raise

    # Step 7: Background tasks
    app.container.start_background_tasks()
    logger.info("✓ Background tasks started")

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")


# ============================================================================
# Application Shutdown
# ============================================================================


async def _shutdown(app: Application) -> None:
    """Gracefully stop services and infrastructure."""
    logger.info("========== KAYA PROGRESSION SHUTDOWN START ==========")

    # Step 1: Shutdown service container
    if app.container is not None:
        try:
            await app.container.shutdown()
            logger.info("✓ Service container shut down")
        except Exception as exc:
            logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    # Step 2: Let in-flight listeners finish
    if app.event_bus is not None:
        try:
            drained = await app.event_bus.drain()
            logger.info(f"✓ Event bus drained ({drained} listeners)")
        except Exception as exc:
            logger.error(f"Event bus drain error: {exc}", exc_info=True)

    # Step 3: Shutdown database
    if app.database is not None:
        try:
            await app.database.shutdown()
            logger.info("✓ Database service shut down")
        except Exception as exc:
            logger.error(f"Database service shutdown error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")


# ============================================================================
# Application Entrypoint
# ============================================================================


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop: asyncio.Event) -> None:
    """Set `stop` on SIGINT/SIGTERM."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            logger.debug(f"{sig.name} handler installed")
        except NotImplementedError:
            logger.debug(f"{sig.name} not supported on this platform (likely Windows)")


async def main() -> None:
    """
    Lifecycle:
        1. Validate configuration
        2. Initialize infrastructure (DB, ConfigManager, EventBus, Services)
        3. Run the expiry scheduler until a stop signal arrives
        4. Shut down gracefully
    """
    Config.load()
    setup_logging()

    app = Application()
    stop = asyncio.Event()
    _install_signal_handlers(asyncio.get_running_loop(), stop)

    try:
        await _startup(app)
        logger.info("Kaya progression engine running; waiting for stop signal")
        await stop.wait()
        logger.info("Stop signal received; shutting down gracefully.")

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    finally:
        await _shutdown(app)
        shutdown_logging()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Manually stopped via keyboard interrupt.")
    except Exception as exc:
        logger.critical(f"Startup failure: {exc}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
