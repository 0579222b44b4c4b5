"""Curated discovery categories backed by short-lived caches."""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from enum import Enum

from stitch_feed.core.settings import settings
from stitch_feed.db.time import utcnow
from stitch_feed.repositories.video_repo import VideoQuery, VideoRepository
from stitch_feed.schemas.video import DEPTH_THREAD, ContentNode
from stitch_feed.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

HOT_TEMPERATURES = frozenset({"blazing", "hot"})
UNDISCOVERED_VIEW_CEILING = 50


class DiscoveryCategory(str, Enum):
    """Named discovery shelves."""

    TRENDING = "trending"
    POPULAR = "popular"
    RECENT = "recent"
    HEAT_CHECK = "heat_check"
    UNDISCOVERED = "undiscovered"
    LONGEST_THREADS = "longest_threads"


# Shelves built from the newest content go stale faster.
FAST_CATEGORIES = frozenset({DiscoveryCategory.TRENDING, DiscoveryCategory.RECENT})


class DiscoveryCategoryService:
    """Loads and caches one list of public threads per category."""

    def __init__(
        self,
        repository: VideoRepository,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
        ttl_seconds: float | None = None,
        fast_ttl_seconds: float | None = None,
    ) -> None:
        self.repository = repository
        self._rng = rng or random.Random()
        self._clock = clock
        self.fast_ttl_seconds = fast_ttl_seconds or settings.discovery_fast_category_ttl_seconds
        self._cache: TTLCache[DiscoveryCategory, list[ContentNode]] = TTLCache(
            ttl_seconds or settings.discovery_category_ttl_seconds
        )
        self._loaders: dict[DiscoveryCategory, Callable[[int], Awaitable[list[ContentNode]]]] = {
            DiscoveryCategory.TRENDING: self._trending,
            DiscoveryCategory.POPULAR: self._popular,
            DiscoveryCategory.RECENT: self._recent,
            DiscoveryCategory.HEAT_CHECK: self._heat_check,
            DiscoveryCategory.UNDISCOVERED: self._undiscovered,
            DiscoveryCategory.LONGEST_THREADS: self._longest_threads,
        }

    async def get(self, category: DiscoveryCategory, limit: int = 40) -> list[ContentNode]:
        """Return up to ``limit`` threads for ``category``, cached per category."""
        cached = self._cache.get(category)
        if cached:
            return cached[:limit]

        nodes = await self._loaders[category](limit)
        ttl = self.fast_ttl_seconds if category in FAST_CATEGORIES else None
        self._cache.put(category, nodes, ttl_seconds=ttl)
        logger.info("Loaded %d threads for discovery category %s", len(nodes), category.value)
        return nodes

    def invalidate_all(self) -> None:
        self._cache.clear()

    async def _threads(self, field: str, limit: int, *, descending: bool = True) -> list[ContentNode]:
        query = (
            VideoQuery()
            .where("conversation_depth", "==", DEPTH_THREAD)
            .order_by(field, descending=descending)
            .limit(max(1, limit))
        )
        return [node for node in await self.repository.query(query) if node.is_discoverable]

    async def _trending(self, limit: int) -> list[ContentNode]:
        cutoff = self._clock() - timedelta(days=7)
        recent = [node for node in await self._threads("created_at", limit * 2) if node.created_at >= cutoff]
        recent.sort(key=lambda node: node.discoverability_score, reverse=True)
        return recent[:limit]

    async def _popular(self, limit: int) -> list[ContentNode]:
        return await self._threads("hype_count", limit)

    async def _recent(self, limit: int) -> list[ContentNode]:
        cutoff = self._clock() - timedelta(hours=24)
        fresh = [
            node for node in await self._threads("created_at", int(limit * 1.5)) if node.created_at >= cutoff
        ][:limit]
        self._rng.shuffle(fresh)
        return fresh

    async def _heat_check(self, limit: int) -> list[ContentNode]:
        hot = [
            node for node in await self._threads("created_at", limit * 2) if node.temperature in HOT_TEMPERATURES
        ][:limit]
        self._rng.shuffle(hot)
        return hot

    async def _undiscovered(self, limit: int) -> list[ContentNode]:
        quiet = [
            node
            for node in await self._threads("view_count", limit * 2, descending=False)
            if node.view_count < UNDISCOVERED_VIEW_CEILING
        ][:limit]
        self._rng.shuffle(quiet)
        return quiet

    async def _longest_threads(self, limit: int) -> list[ContentNode]:
        return await self._threads("reply_count", limit)
