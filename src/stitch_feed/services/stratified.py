"""Time-stratified sampling of followed creators' threads."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from stitch_feed.core.settings import settings
from stitch_feed.db.time import utcnow
from stitch_feed.repositories.video_repo import ContentStoreError, VideoQuery, VideoRepository
from stitch_feed.schemas.video import DEPTH_THREAD, ContentNode

logger = logging.getLogger(__name__)

MIN_BAND_FETCH = 30
BAND_OVERFETCH = 3


@dataclass(frozen=True)
class AgeBand:
    """Half-open age range ``[max_age_days, min_age_days)`` with a page share."""

    name: str
    min_age_days: int
    max_age_days: int
    share_percent: int

    def bounds(self, now: datetime) -> tuple[datetime, datetime]:
        """Return ``(start, end)``; content must satisfy ``start <= created_at < end``."""
        return (
            now - timedelta(days=self.max_age_days),
            now - timedelta(days=self.min_age_days),
        )

    def quota(self, page_size: int) -> int:
        """Items this band contributes to a page of ``page_size``, rounded down."""
        return page_size * self.share_percent // 100


FOLLOWING_BANDS: tuple[AgeBand, ...] = (
    AgeBand("recent", 0, 7, 40),
    AgeBand("medium", 7, 30, 30),
    AgeBand("older", 30, 90, 20),
    AgeBand("deep_cut", 90, 365, 10),
)


def band_quotas(page_size: int, bands: Sequence[AgeBand] = FOLLOWING_BANDS) -> list[int]:
    """Split ``page_size`` across ``bands``, rounding each share down."""
    return [band.quota(max(0, page_size)) for band in bands]


def rotate_batch(
    followed_ids: Sequence[str],
    cursor: int,
    batch_size: int,
) -> tuple[list[str], int]:
    """Return the follower window starting at ``cursor`` and the advanced cursor.

    Sets no larger than ``batch_size`` are returned whole with the cursor
    unchanged, so every creator is sampled on every call.
    """
    if not followed_ids:
        return [], cursor
    total = len(followed_ids)
    if total <= batch_size:
        return list(followed_ids), cursor
    start = cursor % total
    batch = [followed_ids[(start + offset) % total] for offset in range(batch_size)]
    return batch, (start + batch_size) % total


@dataclass(frozen=True)
class StratifiedPage:
    """Nodes gathered for one page and the rotation cursor for the next call."""

    nodes: list[ContentNode] = field(default_factory=list)
    next_cursor: int = 0


class StratifiedFetcher:
    """Builds feed pages by sampling followed creators across age bands."""

    def __init__(
        self,
        repository: VideoRepository,
        *,
        followers_per_batch: int | None = None,
        bands: Sequence[AgeBand] = FOLLOWING_BANDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.repository = repository
        self.followers_per_batch = followers_per_batch or settings.followers_per_batch
        self.bands = tuple(bands)
        self._clock = clock

    async def fetch_stratified(
        self,
        followed_creator_ids: Sequence[str],
        page_size: int,
        exclude_ids: Collection[str] = frozenset(),
        *,
        rotation_cursor: int = 0,
        quotas: Sequence[int] | None = None,
    ) -> StratifiedPage:
        """Return up to ``page_size`` thread roots spread across the age bands.

        Args:
            followed_creator_ids: Creators whose threads may appear.
            page_size: Requested page size, split 40/30/20/10 across bands.
            exclude_ids: Video ids that must not be returned.
            rotation_cursor: Follower rotation offset returned by the previous call.
            quotas: Explicit per-band quotas overriding the percentage split.

        Returns:
            The merged nodes (band order, newest first within a band) and the
            cursor to pass to the next call. Bands that fail contribute only
            what they gathered before the failure.
        """
        followed = list(dict.fromkeys(followed_creator_ids))
        if not followed or page_size <= 0:
            return StratifiedPage([], rotation_cursor)

        band_limits = list(quotas) if quotas is not None else band_quotas(page_size, self.bands)
        now = self._clock()
        cursor = rotation_cursor
        plans: list[tuple[AgeBand, int, list[str]]] = []
        for band, quota in zip(self.bands, band_limits):
            batch, cursor = rotate_batch(followed, cursor, self.followers_per_batch)
            plans.append((band, quota, batch))

        results = await asyncio.gather(
            *(
                self._fetch_band(band, quota, batch, now, exclude_ids)
                for band, quota, batch in plans
            )
        )

        merged: list[ContentNode] = []
        added: set[str] = set()
        for band_nodes in results:
            for node in band_nodes:
                if node.id in added:
                    continue
                added.add(node.id)
                merged.append(node)

        logger.info(
            "Stratified fetch: %s for %d followed creators",
            ", ".join(f"{band.name}={len(nodes)}" for (band, _, _), nodes in zip(plans, results)),
            len(followed),
        )
        return StratifiedPage(merged, cursor)

    async def _fetch_band(
        self,
        band: AgeBand,
        quota: int,
        creator_batch: list[str],
        now: datetime,
        exclude_ids: Collection[str],
    ) -> list[ContentNode]:
        if quota <= 0 or not creator_batch:
            return []

        start, end = band.bounds(now)
        fetch_limit = max(quota * BAND_OVERFETCH, MIN_BAND_FETCH)
        chunk_size = self.repository.in_filter_limit

        candidates: list[ContentNode] = []
        for offset in range(0, len(creator_batch), chunk_size):
            chunk = creator_batch[offset : offset + chunk_size]
            query = (
                VideoQuery()
                .where("creator_id", "in", chunk)
                .where("conversation_depth", "==", DEPTH_THREAD)
                .where("created_at", ">=", start)
                .where("created_at", "<", end)
                .order_by("created_at", descending=True)
                .limit(fetch_limit)
            )
            try:
                candidates.extend(await self.repository.query(query))
            except ContentStoreError as err:
                logger.warning("Band %s query failed, keeping partial results: %s", band.name, err)
                break

        candidates.sort(key=lambda node: node.created_at, reverse=True)

        picked: list[ContentNode] = []
        seen: set[str] = set()
        for node in candidates:
            if node.id in exclude_ids or node.id in seen:
                continue
            seen.add(node.id)
            picked.append(node)
            if len(picked) >= quota:
                break
        return picked
