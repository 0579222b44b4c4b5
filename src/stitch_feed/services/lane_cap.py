"""Message counting for private conversation lanes."""

from __future__ import annotations

import logging
from collections import deque

from stitch_feed.core.settings import settings
from stitch_feed.repositories.video_repo import VideoQuery, VideoRepository
from stitch_feed.schemas.lane import lane_key
from stitch_feed.schemas.video import ContentNode
from stitch_feed.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)

LaneKey = tuple[str, str, str]


class LaneMessageCounter:
    """Counts exchanges in a lane, preferring a materialised conversation.

    Without a cached conversation the count falls back to the direct replies
    to the anchor written by either participant. That undercounts deeper
    exchanges; set ``exact`` to walk the full lane instead.
    """

    def __init__(
        self,
        repository: VideoRepository,
        *,
        ttl_seconds: float | None = None,
        exact: bool | None = None,
    ) -> None:
        self.repository = repository
        self.exact = settings.lane_exact_count if exact is None else exact
        self._messages: TTLCache[LaneKey, list[ContentNode]] = TTLCache(
            ttl_seconds if ttl_seconds is not None else settings.lane_cache_ttl
        )

    async def load_lane_messages(
        self,
        anchor: ContentNode,
        participant_a: str,
        participant_b: str,
    ) -> list[ContentNode]:
        """Return the lane conversation under ``anchor`` in creation order.

        Walks the reply graph breadth-first from the anchor, following only
        replies written by one of the two participants.
        """
        key = lane_key(anchor.id, participant_a, participant_b)
        cached = self._messages.get(key)
        if cached is not None:
            return cached

        query = (
            VideoQuery()
            .where("thread_id", "==", anchor.thread_id)
            .where("conversation_depth", ">", anchor.conversation_depth)
            .order_by("conversation_depth")
            .order_by("created_at")
        )
        descendants = await self.repository.query(query)

        by_parent: dict[str, list[ContentNode]] = {}
        for node in descendants:
            by_parent.setdefault(node.reply_to_video_id or "", []).append(node)

        participants = {participant_a, participant_b}
        messages: list[ContentNode] = []
        queue: deque[str] = deque([anchor.id])
        visited: set[str] = set()
        while queue:
            parent_id = queue.popleft()
            if parent_id in visited:
                continue
            visited.add(parent_id)
            for reply in by_parent.get(parent_id, []):
                if reply.creator_id in participants:
                    messages.append(reply)
                    queue.append(reply.id)

        messages.sort(key=lambda node: node.created_at)
        self._messages.put(key, messages)
        logger.debug(
            "Loaded %d lane messages between %s and %s under %s",
            len(messages),
            participant_a,
            participant_b,
            anchor.id,
        )
        return messages

    async def count_messages(self, anchor_id: str, participant_a: str, participant_b: str) -> int:
        """Return the number of messages exchanged in the lane."""
        cached = self._messages.get(lane_key(anchor_id, participant_a, participant_b))
        if cached is not None:
            return len(cached)

        if self.exact:
            anchor = await self.repository.get(anchor_id)
            return len(await self.load_lane_messages(anchor, participant_a, participant_b))

        replies = await self.repository.query(
            VideoQuery().where("reply_to_video_id", "==", anchor_id)
        )
        participants = {participant_a, participant_b}
        return sum(1 for reply in replies if reply.creator_id in participants)

    def invalidate_anchor(self, anchor_id: str) -> int:
        """Drop every cached conversation under ``anchor_id``."""
        return self._messages.invalidate_where(lambda key: key[0] == anchor_id)

    def clear(self) -> None:
        self._messages.clear()
