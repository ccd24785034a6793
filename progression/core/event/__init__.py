"""
Event system for change signals.

Services publish after each committed mutation; cache and notification
layers subscribe. See `progression.core.event.bus.EventBus`.
"""

from progression.core.event.bus import EventBus, EventMetrics
from progression.core.event.registry import ListenerRegistry, matches
from progression.core.event.types import EventListener, EventPayload, ListenerPriority

__all__ = [
    "EventBus",
    "EventListener",
    "EventMetrics",
    "EventPayload",
    "ListenerPriority",
    "ListenerRegistry",
    "matches",
]
