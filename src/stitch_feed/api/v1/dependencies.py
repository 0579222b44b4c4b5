"""Shared API dependencies for caller identity and session state."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from stitch_feed.repositories.video_repo import VideoRepository
from stitch_feed.services.lanes import ConversationLaneService
from stitch_feed.services.sessions import SessionRegistry, UserSession


def get_registry(request: Request) -> SessionRegistry:
    """Return the session registry created at application startup."""
    return request.app.state.registry


RegistryDep = Annotated[SessionRegistry, Depends(get_registry)]


def get_repository(registry: RegistryDep) -> VideoRepository:
    return registry.repository


def get_lane_service(registry: RegistryDep) -> ConversationLaneService:
    return registry.lanes


def get_current_user_id(
    x_user_id: Annotated[str | None, Header(max_length=128)] = None,
) -> str:
    """Return the caller id from the ``X-User-ID`` header.

    Raises:
        HTTPException: If the header is missing or blank.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    return x_user_id.strip()


CurrentUserIdDep = Annotated[str, Depends(get_current_user_id)]


def get_user_session(registry: RegistryDep, user_id: CurrentUserIdDep) -> UserSession:
    return registry.get(user_id)


RepositoryDep = Annotated[VideoRepository, Depends(get_repository)]
LaneServiceDep = Annotated[ConversationLaneService, Depends(get_lane_service)]
UserSessionDep = Annotated[UserSession, Depends(get_user_session)]
