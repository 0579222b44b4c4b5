"""Following-only home feed with deep time-stratified sampling."""

from __future__ import annotations

import logging
import random

from stitch_feed.core.settings import settings
from stitch_feed.db.time import utcnow
from stitch_feed.repositories.video_repo import VideoRepository
from stitch_feed.schemas.feed import FeedStats
from stitch_feed.schemas.video import ContentNode
from stitch_feed.services.diversity import diversify
from stitch_feed.services.stratified import StratifiedFetcher
from stitch_feed.services.ttl_cache import TTLCache
from stitch_feed.services.view_history import ViewHistory

logger = logging.getLogger(__name__)

# Per-band quotas (recent, medium, older, deep cut) for infinite-scroll pages.
LOAD_MORE_QUOTAS: tuple[int, ...] = (15, 10, 10, 5)
TRIGGER_LOAD_THRESHOLD = 10


class HomeFeedService:
    """Owns one user's home feed session.

    Following a creator overrides discovery suppression: every followed
    creator's threads are eligible here regardless of discovery flags.
    """

    def __init__(
        self,
        repository: VideoRepository,
        *,
        fetcher: StratifiedFetcher | None = None,
        history: ViewHistory | None = None,
        rng: random.Random | None = None,
        page_size: int | None = None,
        max_cached_threads: int | None = None,
    ) -> None:
        self.repository = repository
        self.fetcher = fetcher or StratifiedFetcher(repository)
        self.history = history or ViewHistory()
        self.page_size = page_size or settings.feed_page_size
        self.max_cached_threads = max_cached_threads or settings.max_cached_threads
        self._rng = rng or random.Random()
        self._following: TTLCache[str, list[str]] = TTLCache(settings.following_cache_ttl_seconds)

        self.current_feed: list[ContentNode] = []
        self.current_ids: set[str] = set()
        self.has_more = True
        self.rotation_cursor = 0
        self.stats = FeedStats()

    async def get_following_ids(self, user_id: str) -> list[str]:
        """Return the creators ``user_id`` follows, cached per user for a short while."""
        cached = self._following.get(user_id)
        if cached:
            return cached
        following = await self.repository.get_following_ids(user_id)
        self._following.put(user_id, following)
        return following

    async def load_feed(self, user_id: str, limit: int | None = None) -> list[ContentNode]:
        """Build a fresh first page for ``user_id``."""
        following = await self.get_following_ids(user_id)
        if not following:
            logger.info("Home feed for %s: not following anyone", user_id)
            return []

        excluded = self.history.recently_seen_ids()
        page = await self.fetcher.fetch_stratified(
            following,
            limit or self.page_size,
            excluded,
            rotation_cursor=self.rotation_cursor,
        )
        self.rotation_cursor = page.next_cursor

        feed = diversify(page.nodes, rng=self._rng)
        self.current_feed = feed
        self.current_ids = {node.id for node in feed}
        self.has_more = True
        self.stats.total_threads_loaded = len(feed)
        self.stats.refresh_count += 1
        self.stats.last_refresh_time = utcnow()

        logger.info(
            "Home feed for %s: %d threads (%d recently seen excluded)",
            user_id,
            len(feed),
            len(excluded),
        )
        return feed

    async def load_more(self, user_id: str) -> list[ContentNode]:
        """Append another page and return only the newly added threads."""
        if not self.has_more:
            return []

        following = await self.get_following_ids(user_id)
        exclusion = self.history.recently_seen_ids() | self.current_ids
        page = await self.fetcher.fetch_stratified(
            following,
            sum(LOAD_MORE_QUOTAS),
            exclusion,
            rotation_cursor=self.rotation_cursor,
            quotas=LOAD_MORE_QUOTAS,
        )
        self.rotation_cursor = page.next_cursor

        new_threads = diversify(page.nodes, rng=self._rng)
        if not new_threads:
            self.has_more = False
            logger.info("Home feed for %s: no more content", user_id)
            return []

        self.current_feed.extend(new_threads)
        self.current_ids.update(node.id for node in new_threads)
        self._trim()
        self.stats.total_threads_loaded = len(self.current_feed)
        logger.info("Home feed for %s: added %d threads", user_id, len(new_threads))
        return new_threads

    async def reshuffle(self, user_id: str) -> list[ContentNode]:
        """Drop cached follow data and rotation, then rebuild the first page."""
        self._following.invalidate(user_id)
        self.rotation_cursor = 0
        self.current_ids.clear()
        return await self.load_feed(user_id)

    def mark_seen(self, video_ids: list[str]) -> None:
        self.history.mark_many(video_ids)

    def should_load_more(self, current_index: int) -> bool:
        remaining = len(self.current_feed) - current_index
        return remaining <= TRIGGER_LOAD_THRESHOLD and self.has_more

    def clear(self) -> None:
        self.current_feed = []
        self.current_ids.clear()
        self.has_more = True
        self.rotation_cursor = 0
        self.stats = FeedStats()

    def _trim(self) -> None:
        overflow = len(self.current_feed) - self.max_cached_threads
        if overflow <= 0:
            return
        dropped = self.current_feed[:overflow]
        del self.current_feed[:overflow]
        for node in dropped:
            self.current_ids.discard(node.id)
