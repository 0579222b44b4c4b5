"""Home feed endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from stitch_feed.api.v1.dependencies import CurrentUserIdDep, UserSessionDep
from stitch_feed.schemas.feed import FeedPage
from stitch_feed.services.home_feed import HomeFeedService

router = APIRouter(prefix="/feed", tags=["feed"])


def _page(feed: HomeFeedService, items: list) -> FeedPage:
    return FeedPage(items=items, has_more=feed.has_more, stats=feed.stats.model_copy())


@router.get("/home", response_model=FeedPage)
async def get_home_feed(
    user_id: CurrentUserIdDep,
    session: UserSessionDep,
    limit: int = Query(40, ge=1, le=100),
) -> FeedPage:
    """Build a fresh home feed from the creators the caller follows."""
    async with session.lock:
        items = await session.home_feed.load_feed(user_id, limit)
        return _page(session.home_feed, items)


@router.get("/home/more", response_model=FeedPage)
async def get_more_home_feed(user_id: CurrentUserIdDep, session: UserSessionDep) -> FeedPage:
    """Return the next page of the caller's home feed."""
    async with session.lock:
        items = await session.home_feed.load_more(user_id)
        return _page(session.home_feed, items)


@router.post("/home/reshuffle", response_model=FeedPage)
async def reshuffle_home_feed(user_id: CurrentUserIdDep, session: UserSessionDep) -> FeedPage:
    """Forget follow and rotation state, then rebuild the first page."""
    async with session.lock:
        items = await session.home_feed.reshuffle(user_id)
        return _page(session.home_feed, items)


@router.post("/home/seen", status_code=204)
async def mark_home_feed_seen(session: UserSessionDep, video_ids: list[str]) -> None:
    """Record videos the caller has watched so fresh pages skip them."""
    session.home_feed.mark_seen(video_ids)
