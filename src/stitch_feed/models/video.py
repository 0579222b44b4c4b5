# src/stitch_feed/models/video.py
"""SQLAlchemy model for video documents."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from stitch_feed.db.session import Base


class Video(Base):
    """A stored video document.

    Rows mirror loosely-typed store documents, so most attributes are nullable;
    ``ContentNode`` applies the defaults when a row is decoded.
    """

    __tablename__ = "video"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    creator_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    creator_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Conversation tree: roots have depth 0, no parent, and thread_id == id.
    thread_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reply_to_video_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    conversation_depth: Mapped[int | None] = mapped_column(Integer, nullable=True)

    view_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hype_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cool_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    reply_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    share_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    temperature: Mapped[str | None] = mapped_column(String(16), nullable=True)
    discoverability_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    # "public", "followers", "private" or "unlisted".
    visibility: Mapped[str | None] = mapped_column(String(16), nullable=True)
    exclude_from_discovery: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    is_collection_segment: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    __table_args__ = (
        Index("ix_video_depth_created", "conversation_depth", "created_at"),
    )
