"""Discovery endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Query

from stitch_feed.api.v1.dependencies import RegistryDep, UserSessionDep
from stitch_feed.schemas.feed import DiscoveryPage
from stitch_feed.schemas.video import ContentNode
from stitch_feed.services.categories import DiscoveryCategory

router = APIRouter(prefix="/discovery", tags=["discovery"])


@router.get("", response_model=DiscoveryPage)
async def get_discovery_page(
    session: UserSessionDep,
    limit: int = Query(40, ge=1, le=100),
) -> DiscoveryPage:
    """Return the next page of global discovery; never dead-ends once content exists."""
    async with session.lock:
        items = await session.discovery.next_page(limit)
        return DiscoveryPage(
            items=items,
            exhausted=session.discovery.exhausted,
            seen_count=len(session.discovery.seen_ids),
        )


@router.post("/reset", status_code=204)
async def reset_discovery(session: UserSessionDep) -> None:
    """Start the caller's discovery session over."""
    async with session.lock:
        session.discovery.reset()


@router.get("/{category}", response_model=list[ContentNode])
async def get_discovery_category(
    category: DiscoveryCategory,
    registry: RegistryDep,
    limit: int = Query(40, ge=1, le=100),
) -> list[ContentNode]:
    """Return a curated discovery shelf."""
    return await registry.categories.get(category, limit)
