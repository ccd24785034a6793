"""
Core event types for the progression EventBus.

Purpose
-------
Type definitions for the change-signal system: event payloads, listener
priorities, callback types and the listener record.

Priority Levels
---------------
- CRITICAL (0): Sequential, awaited, timeout-protected. Use for cache
  invalidation that later reads depend on.
- HIGH (10): Sequential, awaited, timeout-protected. Use for user
  notifications tied to a balance change.
- NORMAL (50): Concurrent, awaited. Use for analytics and feeds.
- LOW (100): Fire-and-forget. Use for logging and metrics.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

# Should stay JSON-serializable for best observability
EventPayload = dict[str, Any]


class ListenerPriority(Enum):
    """
    Priority levels for event listeners (lower value runs earlier).

    Examples
    --------
    >>> ListenerPriority.CRITICAL.value
    0
    """

    CRITICAL = 0
    HIGH = 10
    NORMAL = 50
    LOW = 100


CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    A registered event listener.

    Attributes
    ----------
    callback:
        Async or sync callable invoked with the event payload.
    priority:
        Determines execution order and concurrency tier.
    identifier:
        Unique string used for deduplication and unsubscription.
    once:
        If True, the listener is removed before its first execution.
    """

    callback: CallbackType
    priority: ListenerPriority
    identifier: str
    once: bool = False

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        priority: ListenerPriority,
        identifier: Optional[str],
        once: bool,
    ) -> EventListener:
        """
        Create an EventListener, deriving the identifier from the callback
        when none is given.

        Examples
        --------
        >>> listener = EventListener.from_callback(
        ...     event_name="points.balance_changed",
        ...     callback=invalidate_balance,
        ...     priority=ListenerPriority.CRITICAL,
        ...     identifier=None,
        ...     once=False,
        ... )
        >>> listener.identifier
        'cache.invalidate_balance@points.balance_changed'
        """
        if identifier is None:
            module = getattr(callback, "__module__", "unknown")
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}@{event_name}"

        return cls(
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )
