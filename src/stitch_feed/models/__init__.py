# src/stitch_feed/models/__init__.py
"""SQLAlchemy models for the Stitch content store."""

from .follow import Follow
from .video import Video

__all__ = ["Follow", "Video"]
