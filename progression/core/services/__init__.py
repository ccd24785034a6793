"""Service container wiring the progression services."""

from .container import ServiceContainer

__all__ = ["ServiceContainer"]
