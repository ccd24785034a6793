"""
Listener registry for the progression EventBus.

Purpose
-------
Stores listeners by exact event name and by wildcard pattern, resolves the
listeners for a published event, and prunes one-shot listeners atomically.

Wildcard Semantics
------------------
`*` matches any run of characters, including dots:

- "*" matches every event
- "points.*" matches "points.balance_changed"
- "*.completed" matches "challenge.completed"

Thread Safety
-------------
Not thread-safe. Designed for single-threaded asyncio usage where all
mutations happen on the event loop between awaits.
"""

from __future__ import annotations

from fnmatch import fnmatchcase

from progression.core.event.types import EventListener


def matches(event_name: str, pattern: str) -> bool:
    """
    Check if an event name matches a (possibly wildcard) pattern.

    Examples
    --------
    >>> matches("reward.redeemed", "reward.*")
    True
    >>> matches("reward.redeemed", "points.*")
    False
    """
    if pattern == "*":
        return True
    if "*" not in pattern:
        return event_name == pattern
    return fnmatchcase(event_name, pattern)


def _sort_key(listener: EventListener) -> tuple[int, str]:
    return (listener.priority.value, listener.identifier)


class ListenerRegistry:
    """
    Registry for exact and wildcard event listeners.

    Examples
    --------
    >>> registry = ListenerRegistry()
    >>> registry.add_listener("points.balance_changed", listener, allow_duplicates=False)
    True
    >>> len(registry.extract_listeners_for_event("points.balance_changed"))
    1
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}
        self._wildcard_listeners: list[tuple[str, EventListener]] = []

    # ------------------------------------------------------------------ #
    # Modification
    # ------------------------------------------------------------------ #

    def add_listener(
        self,
        event_name: str,
        listener: EventListener,
        *,
        allow_duplicates: bool,
    ) -> bool:
        """
        Register a listener for an event or wildcard pattern.

        Returns
        -------
        bool:
            True if added, False if rejected as a duplicate identifier.
        """
        if "*" in event_name:
            if not allow_duplicates and any(
                existing.identifier == listener.identifier
                for pattern, existing in self._wildcard_listeners
                if pattern == event_name
            ):
                return False

            self._wildcard_listeners.append((event_name, listener))
            self._wildcard_listeners.sort(key=lambda pl: _sort_key(pl[1]))
            return True

        listeners = self._listeners.setdefault(event_name, [])
        if not allow_duplicates and any(
            existing.identifier == listener.identifier for existing in listeners
        ):
            return False

        listeners.append(listener)
        listeners.sort(key=_sort_key)
        return True

    def remove_listener(self, event_name: str, identifier: str) -> bool:
        """Remove a listener by identifier. Returns True if one was removed."""
        removed = False

        if event_name in self._listeners:
            before = len(self._listeners[event_name])
            self._listeners[event_name] = [
                lst for lst in self._listeners[event_name] if lst.identifier != identifier
            ]
            removed = len(self._listeners[event_name]) < before
            if not self._listeners[event_name]:
                del self._listeners[event_name]

        before_wc = len(self._wildcard_listeners)
        self._wildcard_listeners = [
            (pattern, lst)
            for pattern, lst in self._wildcard_listeners
            if not (pattern == event_name and lst.identifier == identifier)
        ]
        return removed or len(self._wildcard_listeners) < before_wc

    def clear_all(self) -> int:
        """Remove all listeners and return the previous total count."""
        total = self.get_total_listener_count()
        self._listeners.clear()
        self._wildcard_listeners.clear()
        return total

    # ------------------------------------------------------------------ #
    # Lookup & Once-Removal
    # ------------------------------------------------------------------ #

    def extract_listeners_for_event(self, event_name: str) -> list[EventListener]:
        """
        Collect exact and wildcard listeners for an event and prune once=True
        listeners in the same step.

        Returns
        -------
        list[EventListener]:
            Listeners sorted by (priority, identifier).
        """
        result: list[EventListener] = []

        exact = self._listeners.get(event_name, [])
        result.extend(exact)
        kept_exact = [lst for lst in exact if not lst.once]
        if kept_exact:
            self._listeners[event_name] = kept_exact
        elif event_name in self._listeners:
            del self._listeners[event_name]

        kept_wildcards: list[tuple[str, EventListener]] = []
        for pattern, listener in self._wildcard_listeners:
            if matches(event_name, pattern):
                result.append(listener)
                if listener.once:
                    continue
            kept_wildcards.append((pattern, listener))
        self._wildcard_listeners = kept_wildcards

        result.sort(key=_sort_key)
        return result

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count_for_event(self, event_name: str) -> int:
        count = len(self._listeners.get(event_name, []))
        count += sum(
            1 for pattern, _ in self._wildcard_listeners if matches(event_name, pattern)
        )
        return count

    def get_total_listener_count(self) -> int:
        total = sum(len(listeners) for listeners in self._listeners.values())
        return total + len(self._wildcard_listeners)

    def get_all_event_keys(self) -> list[str]:
        keys: list[str] = list(self._listeners.keys())
        keys.extend(pattern for pattern, _ in self._wildcard_listeners)
        return sorted(set(keys))
