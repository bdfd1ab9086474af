"""Utility modules for Convex Sync."""

from convex_sync.utils.logger import setup_logging
from convex_sync.utils.display import ProgressDisplay

__all__ = ["setup_logging", "ProgressDisplay"]
