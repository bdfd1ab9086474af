"""Source connectors for Convex Sync."""

from convex_sync.connectors.source import Source
from convex_sync.connectors.convex_client import ConvexClient

__all__ = ["Source", "ConvexClient"]
