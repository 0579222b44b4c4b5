"""Content store gateway for video documents.

The store behaves like a document database: callers compose queries out of
equality, range and bounded ``in`` filters with at most two sort fields, a limit
and a ``start_after`` cursor. Queries that the store would refuse are rejected
here with ``QueryRejectedError`` before they reach the database.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import Any, Final

from pydantic import ValidationError
from sqlalchemy import ColumnElement, and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from stitch_feed.core.settings import settings
from stitch_feed.models import Follow, Video
from stitch_feed.schemas.video import ContentNode

__all__ = [
    "ContentStoreError",
    "DocumentConflictError",
    "DocumentNotFoundError",
    "QueryRejectedError",
    "TransientStoreError",
    "FieldFilter",
    "VideoQuery",
    "VideoRepository",
]

logger = logging.getLogger(__name__)

MAX_ORDER_FIELDS: Final[int] = 2

_QUERYABLE_FIELDS: Final[dict[str, Any]] = {
    "id": Video.id,
    "creator_id": Video.creator_id,
    "created_at": Video.created_at,
    "thread_id": Video.thread_id,
    "reply_to_video_id": Video.reply_to_video_id,
    "conversation_depth": Video.conversation_depth,
    "view_count": Video.view_count,
    "hype_count": Video.hype_count,
    "cool_count": Video.cool_count,
    "reply_count": Video.reply_count,
    "share_count": Video.share_count,
    "temperature": Video.temperature,
    "discoverability_score": Video.discoverability_score,
    "visibility": Video.visibility,
    "exclude_from_discovery": Video.exclude_from_discovery,
}


class ContentStoreError(RuntimeError):
    """Base exception raised for content store failures."""


class DocumentNotFoundError(ContentStoreError):
    """Raised when a point lookup finds no document."""


class DocumentConflictError(ContentStoreError):
    """Raised when a write collides with an existing document id."""


class QueryRejectedError(ContentStoreError):
    """Raised when the store would refuse a query shape."""


class TransientStoreError(ContentStoreError):
    """Raised for I/O or driver failures; the call is safe to retry."""


@dataclass(frozen=True)
class FieldFilter:
    """Single ``field op value`` predicate."""

    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class VideoQuery:
    """Immutable query description; each builder call returns a new query."""

    filters: tuple[FieldFilter, ...] = ()
    order: tuple[tuple[str, bool], ...] = ()
    limit_to: int | None = None
    cursor: ContentNode | None = None

    def where(self, field: str, op: str, value: Any) -> VideoQuery:
        return replace(self, filters=(*self.filters, FieldFilter(field, op, value)))

    def order_by(self, field: str, *, descending: bool = False) -> VideoQuery:
        return replace(self, order=(*self.order, (field, descending)))

    def limit(self, count: int) -> VideoQuery:
        return replace(self, limit_to=count)

    def start_after(self, node: ContentNode | None) -> VideoQuery:
        return replace(self, cursor=node)


def _column(field: str) -> Any:
    try:
        return _QUERYABLE_FIELDS[field]
    except KeyError as err:
        raise QueryRejectedError(f"Field {field!r} is not queryable") from err


def _predicate(flt: FieldFilter, in_limit: int) -> ColumnElement[bool]:
    column = _column(flt.field)
    if flt.op == "==":
        return column.is_(None) if flt.value is None else column == flt.value
    if flt.op == "in":
        values = list(flt.value)
        if not values:
            raise QueryRejectedError("'in' filters need at least one value")
        if len(values) > in_limit:
            raise QueryRejectedError(
                f"'in' filters support at most {in_limit} values, got {len(values)}"
            )
        return column.in_(values)
    if flt.op == ">":
        return column > flt.value
    if flt.op == ">=":
        return column >= flt.value
    if flt.op == "<":
        return column < flt.value
    if flt.op == "<=":
        return column <= flt.value
    raise QueryRejectedError(f"Unsupported operator {flt.op!r}")


def _cursor_predicate(query: VideoQuery) -> ColumnElement[bool]:
    """Keyset predicate for ``start_after`` using the first sort field plus id."""
    if query.cursor is None or not query.order:
        raise QueryRejectedError("start_after requires an explicit ordering")
    field, descending = query.order[0]
    column = _column(field)
    value = getattr(query.cursor, field)
    if descending:
        return or_(column < value, and_(column == value, Video.id < query.cursor.id))
    return or_(column > value, and_(column == value, Video.id > query.cursor.id))


class VideoRepository:
    """Gateway over the video and follow collections.

    Each call opens its own short-lived session so independent queries may run
    concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        in_filter_limit: int | None = None,
    ) -> None:
        """Initialize the repository with an async session factory."""
        self._session_factory = session_factory
        self.in_filter_limit = in_filter_limit or settings.store_in_filter_limit

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except ContentStoreError:
            raise
        except IntegrityError as err:
            raise DocumentConflictError(str(err.orig)) from err
        except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as err:
            raise TransientStoreError(str(err)) from err
        except SQLAlchemyError as err:
            raise ContentStoreError(str(err)) from err

    async def find(self, video_id: str) -> ContentNode | None:
        """Return a video by identifier, or None when it does not exist."""
        async with self._session() as session:
            record = await session.get(Video, video_id)
        if record is None:
            return None
        decoded = self._decode([record])
        return decoded[0] if decoded else None

    async def get(self, video_id: str) -> ContentNode:
        """Return a video by identifier.

        Raises:
            DocumentNotFoundError: If no document has this id.
        """
        node = await self.find(video_id)
        if node is None:
            raise DocumentNotFoundError(f"Video {video_id!r} not found")
        return node

    async def get_many(self, video_ids: Sequence[str]) -> list[ContentNode]:
        """Return the videos for ``video_ids`` in input order, skipping missing ids."""
        found: dict[str, ContentNode] = {}
        unique_ids = list(dict.fromkeys(video_ids))
        for start in range(0, len(unique_ids), self.in_filter_limit):
            chunk = unique_ids[start : start + self.in_filter_limit]
            for node in await self.query(VideoQuery().where("id", "in", chunk)):
                found[node.id] = node
        return [found[video_id] for video_id in unique_ids if video_id in found]

    async def query(self, query: VideoQuery) -> list[ContentNode]:
        """Run ``query`` and return decoded nodes.

        Raises:
            QueryRejectedError: If the query shape is not supported by the store.
            TransientStoreError: If the store could not be reached.
        """
        if len(query.order) > MAX_ORDER_FIELDS:
            raise QueryRejectedError(f"At most {MAX_ORDER_FIELDS} sort fields are supported")
        if query.limit_to is not None and query.limit_to <= 0:
            raise QueryRejectedError("limit must be positive")

        stmt = select(Video)
        predicates = [_predicate(flt, self.in_filter_limit) for flt in query.filters]
        if query.cursor is not None:
            predicates.append(_cursor_predicate(query))
        if predicates:
            stmt = stmt.where(*predicates)

        for field, descending in query.order:
            column = _column(field)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if query.order:
            stmt = stmt.order_by(Video.id.desc() if query.order[0][1] else Video.id.asc())
        if query.limit_to is not None:
            stmt = stmt.limit(query.limit_to)

        async with self._session() as session:
            result = await session.execute(stmt)
            records = list(result.scalars())
        return self._decode(records)

    async def get_following_ids(self, user_id: str) -> list[str]:
        """Return the creators ``user_id`` follows, oldest follow first."""
        stmt = (
            select(Follow.followee_id)
            .where(Follow.follower_id == user_id)
            .order_by(Follow.created_at.asc(), Follow.followee_id.asc())
        )
        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars())

    async def create(self, node: ContentNode) -> ContentNode:
        """Insert ``node`` and return it as stored."""
        record = Video(**node.model_dump())
        async with self._session() as session:
            session.add(record)
            await session.commit()
        return node

    async def increment_reply_count(self, video_id: str, delta: int = 1) -> None:
        """Bump the reply counter of ``video_id``."""
        stmt = (
            update(Video)
            .where(Video.id == video_id)
            .values(reply_count=func.coalesce(Video.reply_count, 0) + delta)
        )
        async with self._session() as session:
            await session.execute(stmt)
            await session.commit()

    @staticmethod
    def _decode(records: Sequence[Video]) -> list[ContentNode]:
        nodes: list[ContentNode] = []
        for record in records:
            try:
                nodes.append(ContentNode.from_record(record))
            except ValidationError as err:
                logger.warning("Skipping malformed video document %s: %s", record.id, err)
        return nodes
