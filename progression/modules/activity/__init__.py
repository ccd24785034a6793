"""
Activity Module
===============

Domain: Inbound activities from other subsystems

Components:
- ActivityHook: Awards activity points and advances matching challenges
"""

from .hook import ActivityHook

__all__ = ["ActivityHook"]
