"""Conversation lane rules.

Reply rights depend on the depth of the video being replied to:

- Thread (depth 0): anyone may reply; the reply becomes a child.
- Child (depth 1): anyone may reply; the reply opens a private lane between
  the replier and the child's creator.
- Stepchild (depth 2+): only the two lane participants may reply, and only
  while the lane is under its message cap.

Lane lookups are cached per session, keyed by the depth-1 anchor, and
invalidated when a reply is recorded under that anchor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stitch_feed.core.settings import settings
from stitch_feed.repositories.video_repo import ContentStoreError, VideoQuery, VideoRepository
from stitch_feed.schemas.lane import LaneInfo, ReplyDecision
from stitch_feed.schemas.video import DEPTH_CHILD, DEPTH_STEPCHILD, DEPTH_THREAD, ContentNode
from stitch_feed.services.lane_cap import LaneMessageCounter
from stitch_feed.services.ttl_cache import TTLCache
from stitch_feed.utils.concurrency import gather_bounded

logger = logging.getLogger(__name__)

THREAD_CHILDREN_LIMIT = 50

REASON_THREAD_REPLY = "Thread-level reply"
REASON_CHILD_REPLY = "Child-level reply (opens lane)"
REASON_NO_ANCHOR = "Could not find lane anchor"
REASON_LOOKUP_FAILED = "Lane lookup failed, try again"
REASON_NOT_PARTICIPANT = "Not a lane participant — use spin-off"
REASON_SELF_REPLY = "Can't reply to your own video"
REASON_ALLOWED = "Lane participant, under cap"


def cap_reason(cap: int) -> str:
    return f"Lane is at {cap}-message cap — use spin-off"


@dataclass(frozen=True)
class LanePath:
    """The depth-1 anchor of a stepchild and the depth-2 reply that opened its lane."""

    anchor: ContentNode
    opener: ContentNode

    @property
    def participants(self) -> tuple[str, str]:
        return (self.anchor.creator_id, self.opener.creator_id)


class ConversationLaneService:
    """Resolves lanes and decides who may reply to a video."""

    def __init__(
        self,
        repository: VideoRepository,
        counter: LaneMessageCounter | None = None,
        *,
        message_cap: int | None = None,
        max_walk_depth: int | None = None,
        ttl_seconds: float | None = None,
        fanout: int | None = None,
    ) -> None:
        self.repository = repository
        self.counter = counter or LaneMessageCounter(repository, ttl_seconds=ttl_seconds)
        self.message_cap = message_cap or settings.lane_message_cap
        self.max_walk_depth = max_walk_depth or settings.lane_max_walk_depth
        self.fanout = fanout or settings.gateway_fanout
        self._lanes: TTLCache[str, list[LaneInfo]] = TTLCache(
            ttl_seconds if ttl_seconds is not None else settings.lane_cache_ttl
        )

    # --- Lane discovery ------------------------------------------------------------
    async def get_lanes(self, child: ContentNode) -> list[LaneInfo]:
        """Return one lane per distinct responder under the depth-1 ``child``.

        Direct replies are read in creation order; a responder's first reply
        opens their lane and later replies extend it. Replies written by the
        child's own creator never open a lane.
        """
        if not child.is_child:
            return []

        cached = self._lanes.get(child.id)
        if cached is not None:
            return cached

        replies = await self.repository.query(
            VideoQuery()
            .where("reply_to_video_id", "==", child.id)
            .order_by("created_at")
        )

        openers: dict[str, ContentNode] = {}
        for reply in replies:
            if reply.creator_id == child.creator_id:
                continue
            openers.setdefault(reply.creator_id, reply)

        counts = await gather_bounded(
            (
                self.counter.count_messages(child.id, child.creator_id, responder_id)
                for responder_id in openers
            ),
            self.fanout,
        )

        lanes = [
            LaneInfo(
                anchor_id=child.id,
                participant_a=child.creator_id,
                participant_b=responder_id,
                responder_name=opener.creator_name,
                first_reply=opener,
                message_count=count,
            )
            for (responder_id, opener), count in zip(openers.items(), counts)
        ]
        self._lanes.put(child.id, lanes)
        logger.info("Found %d conversation lanes for child %s", len(lanes), child.id)
        return lanes

    async def load_lane_messages(
        self,
        child: ContentNode,
        participant_a: str,
        participant_b: str,
    ) -> list[ContentNode]:
        """Return the full back-and-forth of one lane in creation order."""
        return await self.counter.load_lane_messages(child, participant_a, participant_b)

    async def load_thread_children(self, thread_id: str) -> list[ContentNode]:
        """Return replies in a thread ordered by depth then creation time."""
        return await self.repository.query(
            VideoQuery()
            .where("thread_id", "==", thread_id)
            .where("conversation_depth", ">", 0)
            .order_by("conversation_depth")
            .order_by("created_at")
            .limit(THREAD_CHILDREN_LIMIT)
        )

    # --- Lane validation -----------------------------------------------------------
    async def can_reply(self, target: ContentNode, requesting_user_id: str) -> ReplyDecision:
        """Decide whether ``requesting_user_id`` may reply to ``target``.

        Never raises: lookup failures and broken reply chains deny the reply.
        """
        decision, _ = await self.evaluate_reply(target, requesting_user_id)
        return decision

    async def evaluate_reply(
        self,
        target: ContentNode,
        requesting_user_id: str,
    ) -> tuple[ReplyDecision, LanePath | None]:
        """Return the reply decision and, for stepchildren, the resolved lane."""
        if target.conversation_depth == DEPTH_THREAD:
            return ReplyDecision(allowed=True, reason=REASON_THREAD_REPLY), None
        if target.conversation_depth == DEPTH_CHILD:
            return ReplyDecision(allowed=True, reason=REASON_CHILD_REPLY), None

        try:
            path = await self.resolve_lane(target)
            if path is None:
                logger.warning("No lane anchor for stepchild %s", target.id)
                return ReplyDecision(allowed=False, reason=REASON_NO_ANCHOR), None

            participants = path.participants
            if requesting_user_id not in participants:
                return ReplyDecision(allowed=False, reason=REASON_NOT_PARTICIPANT), path

            count = await self.counter.count_messages(path.anchor.id, *participants)
        except ContentStoreError as err:
            logger.warning("Lane lookup for %s failed: %s", target.id, err)
            return ReplyDecision(allowed=False, reason=REASON_LOOKUP_FAILED), None

        if count >= self.message_cap:
            return ReplyDecision(allowed=False, reason=cap_reason(self.message_cap)), path

        if target.creator_id == requesting_user_id:
            return ReplyDecision(allowed=False, reason=REASON_SELF_REPLY), path

        return ReplyDecision(allowed=True, reason=REASON_ALLOWED), path

    async def resolve_lane(self, node: ContentNode) -> LanePath | None:
        """Walk up from a stepchild to its depth-2 opener and depth-1 anchor.

        Returns None when the chain breaks, loops, exceeds ``max_walk_depth``
        hops, or a parent's depth is not exactly one less than its reply's.
        """
        if node.conversation_depth < DEPTH_STEPCHILD:
            return None

        current = node
        opener = node if node.conversation_depth == DEPTH_STEPCHILD else None
        visited = {node.id}
        hops = 0
        while current.conversation_depth > DEPTH_CHILD:
            parent_id = current.reply_to_video_id
            if not parent_id or parent_id in visited or hops >= self.max_walk_depth:
                return None
            parent = await self.repository.find(parent_id)
            if parent is None or parent.conversation_depth != current.conversation_depth - 1:
                return None
            visited.add(parent_id)
            hops += 1
            current = parent
            if current.conversation_depth == DEPTH_STEPCHILD:
                opener = current

        if opener is None:
            return None
        return LanePath(anchor=current, opener=opener)

    async def find_lane_anchor(self, node: ContentNode) -> ContentNode | None:
        """Return the depth-1 child anchoring ``node``'s lane, if resolvable."""
        path = await self.resolve_lane(node)
        return path.anchor if path else None

    # --- Cache management ----------------------------------------------------------
    def invalidate_lane(self, anchor_id: str) -> None:
        self._lanes.invalidate(anchor_id)
        removed = self.counter.invalidate_anchor(anchor_id)
        logger.debug("Invalidated lanes for %s (%d conversations dropped)", anchor_id, removed)

    def clear_cache(self) -> None:
        self._lanes.clear()
        self.counter.clear()
