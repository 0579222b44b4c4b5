"""Conversation lane and reply endpoints."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from stitch_feed.api.v1.dependencies import CurrentUserIdDep, LaneServiceDep, RepositoryDep
from stitch_feed.schemas.lane import LaneInfo, ReplyCreate, ReplyDecision
from stitch_feed.schemas.video import ContentNode
from stitch_feed.services.reply_service import ReplyDeniedError, record_reply

router = APIRouter(tags=["lanes"])


@router.get("/videos/{video_id}/can-reply", response_model=ReplyDecision)
async def check_can_reply(
    video_id: str,
    user_id: CurrentUserIdDep,
    repo: RepositoryDep,
    lanes: LaneServiceDep,
) -> ReplyDecision:
    """Report whether the caller may reply to ``video_id``."""
    target = await repo.get(video_id)
    return await lanes.can_reply(target, user_id)


@router.get("/videos/{video_id}/lanes", response_model=list[LaneInfo])
async def list_lanes(video_id: str, repo: RepositoryDep, lanes: LaneServiceDep) -> list[LaneInfo]:
    """List the lanes opened under a depth-1 child; other depths have none."""
    child = await repo.get(video_id)
    return await lanes.get_lanes(child)


@router.get("/videos/{video_id}/lanes/{responder_id}/messages", response_model=list[ContentNode])
async def get_lane_messages(
    video_id: str,
    responder_id: str,
    repo: RepositoryDep,
    lanes: LaneServiceDep,
) -> list[ContentNode]:
    """Return the exchange between the child's creator and ``responder_id``."""
    child = await repo.get(video_id)
    if not child.is_child:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Lanes are anchored at child videos",
        )
    return await lanes.load_lane_messages(child, child.creator_id, responder_id)


@router.post(
    "/videos/{video_id}/replies",
    response_model=ContentNode,
    status_code=status.HTTP_201_CREATED,
)
async def create_reply(
    video_id: str,
    payload: ReplyCreate,
    user_id: CurrentUserIdDep,
    repo: RepositoryDep,
    lanes: LaneServiceDep,
) -> ContentNode:
    """Record a reply by the caller, enforcing the lane rules."""
    try:
        return await record_reply(
            repository=repo,
            lanes=lanes,
            parent_id=video_id,
            creator_id=user_id,
            creator_name=payload.creator_name,
            video_id=payload.video_id,
        )
    except ReplyDeniedError as err:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=err.decision.reason) from err


@router.get("/threads/{thread_id}/children", response_model=list[ContentNode])
async def get_thread_children(thread_id: str, lanes: LaneServiceDep) -> list[ContentNode]:
    """Return the replies in a thread, shallowest first."""
    return await lanes.load_thread_children(thread_id)
