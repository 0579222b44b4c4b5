# src/stitch_feed/schemas/feed.py
"""Feed and discovery response schemas."""

from datetime import datetime

from pydantic import BaseModel

from stitch_feed.schemas.video import ContentNode


class FeedStats(BaseModel):
    """Counters describing the current home feed session."""

    total_threads_loaded: int = 0
    refresh_count: int = 0
    last_refresh_time: datetime | None = None


class FeedPage(BaseModel):
    """A page of the home feed."""

    items: list[ContentNode]
    has_more: bool
    stats: FeedStats


class DiscoveryPage(BaseModel):
    """A page of global discovery content."""

    items: list[ContentNode]
    exhausted: bool
    seen_count: int
