"""API endpoint modules."""

from .discovery import router as discovery_router
from .feed import router as feed_router
from .system import router as system_router
from .videos import router as videos_router

__all__ = [
    "discovery_router",
    "feed_router",
    "system_router",
    "videos_router",
]
