# src/stitch_feed/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import discovery_router, feed_router, system_router, videos_router

__all__ = [
    "discovery_router",
    "feed_router",
    "system_router",
    "videos_router",
]
