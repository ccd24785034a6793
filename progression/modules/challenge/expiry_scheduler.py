"""
Challenge Expiry Scheduler - Periodic enrollment expiry

Purpose
-------
Background loop that calls `ChallengeService.expire_sweep()` at a fixed
interval so ACTIVE enrollments of ended challenges move to EXPIRED.

Responsibilities
----------------
- Run the sweep every `challenges.expiry_sweep_interval_seconds`
- Log and count failed sweeps; the next tick retries
- Provide graceful start/stop with asyncio.Event signaling

Non-Responsibilities
--------------------
- Deciding which enrollments expire (ChallengeService does that)
- Awarding or refunding points (expired enrollments earn nothing)

Architecture Notes
------------------
**Opt-In Design**:
- Nothing runs automatically; the caller creates and starts the scheduler
- The sweep is one guarded UPDATE, so running it concurrently with user
  traffic or with another scheduler instance is safe

Usage Example
-------------
>>> stop_event = asyncio.Event()
>>> scheduler = ChallengeExpiryScheduler.from_config(challenge_service, config_manager)
>>> task = asyncio.create_task(scheduler.run_forever(stop_event=stop_event))
>>>
>>> # ... process runs ...
>>>
>>> stop_event.set()
>>> await task
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from progression.core.logging.logger import get_logger
from progression.modules.shared.constants import EXPIRY_SWEEP_INTERVAL_SECONDS

if TYPE_CHECKING:
    from progression.core.config.manager import ConfigManager
    from progression.modules.challenge.service import ChallengeService

logger = get_logger(__name__)


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class ChallengeExpirySchedulerConfig:
    """
    Attributes
    ----------
    interval_seconds : float
        Time between sweeps in seconds.
    """

    interval_seconds: float

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> ChallengeExpirySchedulerConfig:
        """
        Build configuration from the economy tunables.

        Configuration Keys
        ------------------
        - challenges.expiry_sweep_interval_seconds (default: 300)
        """
        interval_seconds = float(
            config_manager.get(
                "challenges.expiry_sweep_interval_seconds", EXPIRY_SWEEP_INTERVAL_SECONDS
            )
        )
        if interval_seconds <= 0:
            logger.warning(
                "Invalid expiry sweep interval, using default",
                extra={
                    "configured": interval_seconds,
                    "default": EXPIRY_SWEEP_INTERVAL_SECONDS,
                },
            )
            interval_seconds = float(EXPIRY_SWEEP_INTERVAL_SECONDS)
        return cls(interval_seconds=interval_seconds)


# ============================================================================
# Scheduler
# ============================================================================


class ChallengeExpiryScheduler:
    """
    Periodic challenge expiry sweep.

    Public API
    ----------
    - run_once() -> Run one sweep, never raises
    - run_forever(stop_event) -> Sweep until stopped
    - start() / stop() -> Own the background task
    """

    def __init__(
        self,
        challenge_service: ChallengeService,
        config: ChallengeExpirySchedulerConfig,
    ) -> None:
        self._challenges = challenge_service
        self._config = config
        self._stop_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task[None]] = None

        self.sweeps: int = 0
        self.failures: int = 0
        self.total_expired: int = 0

    @classmethod
    def from_config(
        cls, challenge_service: ChallengeService, config_manager: ConfigManager
    ) -> ChallengeExpiryScheduler:
        return cls(challenge_service, ChallengeExpirySchedulerConfig.from_config(config_manager))

    @property
    def interval_seconds(self) -> float:
        return self._config.interval_seconds

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[int]:
        """
        Run a single sweep.

        Returns
        -------
        Optional[int]
            Enrollments expired, or None when the sweep failed. Failures are
            logged and left for the next tick.
        """
        self.sweeps += 1
        try:
            expired = await self._challenges.expire_sweep()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failures += 1
            logger.error(
                "Challenge expiry sweep failed; retrying next tick",
                extra={
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                    "sweeps": self.sweeps,
                    "failures": self.failures,
                },
                exc_info=True,
            )
            return None

        self.total_expired += expired
        logger.debug(
            "Challenge expiry scheduler tick",
            extra={"expired": expired, "total_expired": self.total_expired},
        )
        return expired

    async def run_forever(self, *, stop_event: asyncio.Event) -> None:
        """
        Sweep until stop_event is set.

        The first sweep runs immediately, then once per interval.
        """
        logger.info(
            "ChallengeExpiryScheduler started",
            extra={"interval_seconds": self._config.interval_seconds},
        )

        try:
            while not stop_event.is_set():
                await self.run_once()

                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self._config.interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue

        finally:
            logger.info(
                "ChallengeExpiryScheduler stopped",
                extra={
                    "sweeps": self.sweeps,
                    "failures": self.failures,
                    "total_expired": self.total_expired,
                },
            )

    def start(self) -> asyncio.Task[None]:
        """Schedule `run_forever` on the running loop. Idempotent."""
        if self.is_running:
            assert self._task is not None
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(
            self.run_forever(stop_event=self._stop_event),
            name="challenge-expiry-scheduler",
        )
        return self._task

    async def stop(self) -> None:
        """Signal the loop and wait for it to finish."""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
        self._task = None
        self._stop_event = None
