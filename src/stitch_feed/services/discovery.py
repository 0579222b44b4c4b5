"""Global discovery feed that never dead-ends.

A ``DiscoverySession`` pulls never-seen public threads from the store until a
fetch yields nothing new. From then on the session is exhausted and pages are
served from a creator-diversified replay of everything it has already shown,
reshuffled after every full loop.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from stitch_feed.db.time import utcnow
from stitch_feed.repositories.video_repo import ContentStoreError, VideoQuery, VideoRepository
from stitch_feed.schemas.video import DEPTH_THREAD, ContentNode
from stitch_feed.services.diversity import diversify

logger = logging.getLogger(__name__)

WINDOW_SLACK = 10
FALLBACK_PAGE_SIZE = 40
FALLBACK_MAX_ATTEMPTS = 2


class DiscoveryState(str, Enum):
    """Discovery session states."""

    FETCHING = "fetching"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class DiscoveryWindow:
    """Age window for discovery; ``max_age_days=None`` means no lower bound."""

    name: str
    min_age_days: int
    max_age_days: int | None
    share_percent: int

    def quota(self, limit: int) -> int:
        """Items this window contributes to a page of ``limit``, rounded up."""
        return -(-limit * self.share_percent // 100)


DISCOVERY_WINDOWS: tuple[DiscoveryWindow, ...] = (
    DiscoveryWindow("fresh", 0, 3, 40),
    DiscoveryWindow("settling", 3, 14, 30),
    DiscoveryWindow("proven", 14, 60, 20),
    DiscoveryWindow("catalog", 60, None, 10),
)


@dataclass
class _FetchResult:
    nodes: list[ContentNode]
    cursor: ContentNode | None
    failed: bool


class DiscoverySession:
    """Per-user discovery pagination state.

    Attributes:
        state: ``FETCHING`` until a fetch yields no new items, then ``EXHAUSTED``
            for the rest of the session.
        seen_ids: Ids of every node in ``all_fetched``.
        all_fetched: Every node surfaced this session, in replay order.
        replay_cursor: Next replay offset into ``all_fetched``.
    """

    def __init__(
        self,
        repository: VideoRepository,
        *,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self._rng = rng or random.Random()
        self._clock = clock
        self.state = DiscoveryState.FETCHING
        self.seen_ids: set[str] = set()
        self.all_fetched: list[ContentNode] = []
        self.replay_cursor = 0
        self._stale_cursor = 0
        self._last_document: ContentNode | None = None

    @property
    def exhausted(self) -> bool:
        return self.state is DiscoveryState.EXHAUSTED

    def reset(self) -> None:
        """Forget the session; the next page queries the store again."""
        self.state = DiscoveryState.FETCHING
        self.seen_ids.clear()
        self.all_fetched.clear()
        self.replay_cursor = 0
        self._stale_cursor = 0
        self._last_document = None

    async def next_page(self, page_size: int = 40) -> list[ContentNode]:
        """Return the next page of discovery content.

        Never raises for an empty or failing store: once anything has been seen
        this call always returns a non-empty page.
        """
        if page_size <= 0:
            return []
        if self.exhausted:
            return self._replay(page_size)

        result = await self._fetch_new(page_size)
        if not result.nodes:
            if result.failed:
                logger.warning("Discovery fetch failed; serving %d cached items", len(self.all_fetched))
                return self._stale_page(page_size)
            self.state = DiscoveryState.EXHAUSTED
            self.replay_cursor = 0
            logger.info(
                "Discovery exhausted after %d items; switching to replay",
                len(self.all_fetched),
            )
            return self._replay(page_size)

        self._last_document = result.cursor
        for node in result.nodes:
            self.seen_ids.add(node.id)
            self.all_fetched.append(node)

        page = diversify(result.nodes, rng=self._rng)
        logger.info(
            "Discovery returning %d new items (total seen: %d)",
            len(page),
            len(self.all_fetched),
        )
        return page

    def _stale_page(self, page_size: int) -> list[ContentNode]:
        """Serve already-seen items while the store is failing.

        Walks ``all_fetched`` with its own cursor and leaves the replay order
        and ``replay_cursor`` untouched.
        """
        if not self.all_fetched:
            return []
        total = len(self.all_fetched)
        start = self._stale_cursor % total
        batch = [self.all_fetched[(start + offset) % total] for offset in range(min(page_size, total))]
        self._stale_cursor = (start + len(batch)) % total
        return diversify(batch, rng=self._rng)

    def _replay(self, page_size: int) -> list[ContentNode]:
        if not self.all_fetched:
            return []
        if self.replay_cursor == 0:
            logger.debug("Reshuffling %d items for a fresh replay loop", len(self.all_fetched))
            self.all_fetched = diversify(self.all_fetched, rng=self._rng)

        start = self.replay_cursor
        end = min(start + page_size, len(self.all_fetched))
        batch = self.all_fetched[start:end]
        self.replay_cursor = end if end < len(self.all_fetched) else 0
        return batch

    async def _fetch_new(self, limit: int) -> _FetchResult:
        """Collect up to ``limit`` unseen nodes without touching session state."""
        now = self._clock()
        window_results = await asyncio.gather(
            *(self._fetch_window(window, limit, now) for window in DISCOVERY_WINDOWS),
            return_exceptions=True,
        )

        picked: list[ContentNode] = []
        taken: set[str] = set()
        failed = False
        for window, outcome in zip(DISCOVERY_WINDOWS, window_results):
            if isinstance(outcome, ContentStoreError):
                logger.warning("Discovery window %s failed: %s", window.name, outcome)
                failed = True
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            added = 0
            for node in outcome:
                if added >= window.quota(limit):
                    break
                if not self._is_new(node, taken):
                    continue
                taken.add(node.id)
                picked.append(node)
                added += 1

        cursor = self._last_document
        attempts = 0
        while len(picked) < limit and attempts < FALLBACK_MAX_ATTEMPTS:
            attempts += 1
            query = (
                VideoQuery()
                .where("conversation_depth", "==", DEPTH_THREAD)
                .order_by("created_at", descending=True)
                .limit(FALLBACK_PAGE_SIZE)
                .start_after(cursor)
            )
            try:
                page = await self.repository.query(query)
            except ContentStoreError as err:
                logger.warning("Discovery fallback page failed: %s", err)
                failed = True
                break
            if not page:
                break
            for node in page:
                cursor = node
                if not self._is_new(node, taken):
                    continue
                taken.add(node.id)
                picked.append(node)
                if len(picked) >= limit:
                    break

        return _FetchResult(picked, cursor, failed)

    async def _fetch_window(
        self,
        window: DiscoveryWindow,
        limit: int,
        now: datetime,
    ) -> list[ContentNode]:
        query = VideoQuery().where("conversation_depth", "==", DEPTH_THREAD)
        if window.max_age_days is not None:
            query = query.where("created_at", ">", now - timedelta(days=window.max_age_days))
        query = (
            query.where("created_at", "<=", now - timedelta(days=window.min_age_days))
            .order_by("created_at", descending=True)
            .limit(window.quota(limit) + WINDOW_SLACK)
        )
        return await self.repository.query(query)

    def _is_new(self, node: ContentNode, taken: set[str]) -> bool:
        return node.is_discoverable and node.id not in self.seen_ids and node.id not in taken
