"""Recording replies under the conversation lane rules."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from stitch_feed.db.time import utcnow
from stitch_feed.repositories.video_repo import VideoRepository
from stitch_feed.schemas.lane import ReplyDecision
from stitch_feed.schemas.video import ContentNode
from stitch_feed.services.lanes import ConversationLaneService

logger = logging.getLogger(__name__)


class ReplyDeniedError(RuntimeError):
    """Raised when the lane rules refuse a reply."""

    def __init__(self, decision: ReplyDecision) -> None:
        super().__init__(decision.reason)
        self.decision = decision


async def record_reply(
    *,
    repository: VideoRepository,
    lanes: ConversationLaneService,
    parent_id: str,
    creator_id: str,
    creator_name: str | None = None,
    video_id: str | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> ContentNode:
    """Store a reply to ``parent_id`` written by ``creator_id``.

    Raises:
        DocumentNotFoundError: If the parent video does not exist.
        ReplyDeniedError: If ``creator_id`` may not reply to the parent.
        DocumentConflictError: If ``video_id`` is already taken.
    """
    parent = await repository.get(parent_id)
    decision, lane = await lanes.evaluate_reply(parent, creator_id)
    if not decision.allowed:
        logger.info("Reply by %s to %s denied: %s", creator_id, parent_id, decision.reason)
        raise ReplyDeniedError(decision)

    reply = ContentNode(
        id=video_id or uuid.uuid4().hex,
        creator_id=creator_id,
        creator_name=creator_name or "Unknown",
        created_at=clock(),
        thread_id=parent.thread_id,
        reply_to_video_id=parent.id,
        conversation_depth=parent.conversation_depth + 1,
    )
    await repository.create(reply)
    await repository.increment_reply_count(parent.id)

    # Invalidate from the lane resolved before the write, never from a fresh lookup.
    if parent.is_child:
        lanes.invalidate_lane(parent.id)
    elif lane is not None:
        lanes.invalidate_lane(lane.anchor.id)

    logger.info(
        "Recorded reply %s by %s at depth %d in thread %s",
        reply.id,
        creator_id,
        reply.conversation_depth,
        reply.thread_id,
    )
    return reply
