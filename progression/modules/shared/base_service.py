"""
Base Service Foundation

Purpose
-------
Provides the foundational class for all domain services in the progression
engine. Services implement business logic, open transactions through the
injected `DatabaseService`, enforce business rules and publish change
signals after commit.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access patterns
- Event emission helpers
- Input validation helpers raising `ValidationError`

What this class does NOT do:
- Manage database transactions (that's DatabaseService's job)
- Handle SQLAlchemy sessions directly

Usage
-----
    class PointsLedgerService(BaseService):
        def __init__(self, database, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._db = database

        async def award_points(self, user_id: str, points: int, reason):
            # Service logic here, using self.log, self.get_config, self.emit_event
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from progression.core.config.errors import ConfigurationError
from progression.core.logging.logger import log_extra
from progression.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from progression.core.config.manager import ConfigManager
    from progression.core.event.bus import EventBus


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Economy tunables
        event_bus: Event bus for change signals
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Safely retrieve configuration value.

        Args:
            key: Configuration key to retrieve
            default: Default value if key not found
            required: If True, raise exception if key missing

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(f"Required configuration key '{key}' is missing")
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Publish a change signal. Call only after the transaction committed.

        Args:
            event_type: Type/name of the event
            data: Event payload data
            context: Optional additional context
        """
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        """
        Log a service operation with structured context.

        Args:
            operation: Name of the operation being performed
            **context: Additional context data
        """
        self.log.info(
            f"Service operation: {operation}",
            extra=log_extra({"operation": operation, **context}),
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """
        Log a service error with full context.

        Args:
            operation: Name of the operation that failed
            error: The exception that occurred
            **context: Additional context data
        """
        self.log.error(
            f"Service error during {operation}: {str(error)}",
            extra=log_extra(
                {
                    "operation": operation,
                    "error_type": type(error).__name__,
                    "error_message": str(error),
                    **context,
                }
            ),
        )

    def validate_positive_int(self, value: int, name: str) -> None:
        """
        Validate that a value is a positive integer.

        Raises:
            ValidationError: If value is not positive
        """
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValidationError(name, f"{name} must be a positive integer, got {value}")

