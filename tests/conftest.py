# tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterator
from datetime import datetime, timedelta, timezone
from itertools import count
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from stitch_feed.db.session import Base, build_engine, build_session_factory
from stitch_feed.models import Follow, Video
from stitch_feed.repositories.video_repo import VideoRepository
from stitch_feed.schemas.video import ContentNode

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

_VIDEO_COUNTER = count(1)


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def clock() -> Callable[[], datetime]:
    return lambda: NOW


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "stitch.db"


@pytest.fixture()
def sync_engine(db_path: Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def seed(sync_engine: Engine) -> Callable[..., None]:
    """Insert ContentNodes, Video rows or Follow rows straight into the store."""

    def _seed(*rows: Any) -> None:
        with Session(sync_engine) as session:
            for row in rows:
                if isinstance(row, ContentNode):
                    row = Video(**row.model_dump())
                session.add(row)
            session.commit()

    return _seed


@pytest.fixture()
def follow(seed: Callable[..., None]) -> Callable[..., None]:
    def _follow(follower_id: str, *followee_ids: str) -> None:
        seed(
            *(
                Follow(
                    follower_id=follower_id,
                    followee_id=followee_id,
                    created_at=NOW + timedelta(seconds=index),
                )
                for index, followee_id in enumerate(followee_ids)
            )
        )

    return _follow


@pytest.fixture()
async def repo(db_path: Path, sync_engine: Engine) -> AsyncIterator[VideoRepository]:
    engine = build_engine(f"sqlite+aiosqlite:///{db_path}")
    try:
        yield VideoRepository(build_session_factory(engine), in_filter_limit=10)
    finally:
        await engine.dispose()


@pytest.fixture()
def make_video() -> Callable[..., ContentNode]:
    """Factory for ContentNodes; replies inherit thread and depth from ``parent``."""

    def _make(
        video_id: str | None = None,
        *,
        creator: str = "alice",
        age: timedelta = timedelta(hours=1),
        parent: ContentNode | None = None,
        **fields: Any,
    ) -> ContentNode:
        video_id = video_id or f"video-{next(_VIDEO_COUNTER)}"
        if parent is not None:
            fields.setdefault("thread_id", parent.thread_id)
            fields.setdefault("reply_to_video_id", parent.id)
            fields.setdefault("conversation_depth", parent.conversation_depth + 1)
        return ContentNode(
            id=video_id,
            creator_id=creator,
            creator_name=creator.title(),
            created_at=NOW - age,
            **fields,
        )

    return _make
