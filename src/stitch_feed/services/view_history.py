"""Rolling record of videos a user has already been shown."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Iterable

from stitch_feed.core.settings import settings


class ViewHistory:
    """Keeps the most recent ``max_ids`` seen video ids with first-seen times."""

    def __init__(
        self,
        *,
        max_ids: int | None = None,
        recent_hours: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_ids = max_ids or settings.view_history_max_ids
        self.recent_hours = recent_hours or settings.view_history_recent_hours
        self._clock = clock
        self._seen: OrderedDict[str, float] = OrderedDict()

    def mark_seen(self, video_id: str) -> None:
        self.mark_many([video_id])

    def mark_many(self, video_ids: Iterable[str]) -> None:
        """Record ``video_ids``; already-seen ids keep their original timestamp."""
        now = self._clock()
        for video_id in video_ids:
            if video_id not in self._seen:
                self._seen[video_id] = now
        while len(self._seen) > self.max_ids:
            self._seen.popitem(last=False)

    def was_seen(self, video_id: str) -> bool:
        """Return True if ``video_id`` is still in the rolling history."""
        return video_id in self._seen

    def was_recently_seen(self, video_id: str) -> bool:
        seen_at = self._seen.get(video_id)
        return seen_at is not None and seen_at > self._cutoff()

    def recently_seen_ids(self) -> set[str]:
        """Ids seen within the last ``recent_hours``."""
        cutoff = self._cutoff()
        return {video_id for video_id, seen_at in self._seen.items() if seen_at > cutoff}

    def filter_unseen(self, video_ids: Iterable[str]) -> list[str]:
        return [video_id for video_id in video_ids if video_id not in self._seen]

    def clear(self) -> None:
        self._seen.clear()

    def __len__(self) -> int:
        return len(self._seen)

    def _cutoff(self) -> float:
        return self._clock() - self.recent_hours * 3600
