# src/stitch_feed/models/follow.py
"""SQLAlchemy model for follow edges."""

from datetime import datetime

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from stitch_feed.db.session import Base
from stitch_feed.db.time import utcnow


class Follow(Base):
    """Directed edge: ``follower_id`` follows ``followee_id``."""

    __tablename__ = "follow"

    follower_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    followee_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
