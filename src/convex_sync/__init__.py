"""Convex Sync - change data capture from a Convex deployment."""

__version__ = "0.6.0"
__author__ = "Convex Sync Contributors"

from convex_sync.config import Settings
from convex_sync.core.state import State

__all__ = ["Settings", "State", "__version__"]
