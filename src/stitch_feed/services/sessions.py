"""Per-user session state for the feed services."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from stitch_feed.core.settings import settings
from stitch_feed.repositories.video_repo import VideoRepository
from stitch_feed.services.categories import DiscoveryCategoryService
from stitch_feed.services.discovery import DiscoverySession
from stitch_feed.services.home_feed import HomeFeedService
from stitch_feed.services.lanes import ConversationLaneService
from stitch_feed.services.ttl_cache import TTLCache

logger = logging.getLogger(__name__)


@dataclass
class UserSession:
    """Feed state owned by one user; ``lock`` serialises requests that mutate it."""

    user_id: str
    home_feed: HomeFeedService
    discovery: DiscoverySession
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class SessionRegistry:
    """Creates user sessions lazily and holds the services they share.

    A session is dropped once it has gone ``idle_ttl_seconds`` without a
    request, and the least recently used session is evicted when
    ``max_sessions`` are live. A returning user then starts from a fresh feed.

    Lane and category caches are shared so a recorded reply invalidates the
    lane for every user at once.
    """

    def __init__(
        self,
        repository: VideoRepository,
        *,
        idle_ttl_seconds: float | None = None,
        max_sessions: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.lanes = ConversationLaneService(repository)
        self.categories = DiscoveryCategoryService(repository)
        self._sessions: TTLCache[str, UserSession] = TTLCache(
            idle_ttl_seconds or settings.session_idle_ttl_seconds,
            max_entries=max_sessions or settings.max_sessions,
            clock=clock,
        )

    def get(self, user_id: str) -> UserSession:
        """Return the session for ``user_id``, creating it if absent or expired."""
        session = self._sessions.get(user_id)
        if session is None:
            logger.debug("Starting feed session for %s", user_id)
            session = UserSession(
                user_id=user_id,
                home_feed=HomeFeedService(self.repository),
                discovery=DiscoverySession(self.repository),
            )
        # Storing again refreshes the idle deadline and the eviction order.
        self._sessions.put(user_id, session)
        return session

    def __len__(self) -> int:
        return len(self._sessions)
