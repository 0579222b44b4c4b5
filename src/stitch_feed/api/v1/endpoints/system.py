"""System endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from stitch_feed.api.v1.dependencies import RegistryDep
from stitch_feed.core.settings import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/health")
async def health(registry: RegistryDep) -> dict[str, object]:
    """Report liveness and the number of active user sessions."""
    return {
        "status": "ok",
        "name": settings.app_name,
        "version": settings.app_version,
        "sessions": len(registry),
    }
