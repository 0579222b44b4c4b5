# src/stitch_feed/schemas/video.py
"""Typed view of stored video documents."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stitch_feed.db.time import as_utc, utcnow

VISIBILITY_PUBLIC = "public"

DEPTH_THREAD = 0
DEPTH_CHILD = 1
DEPTH_STEPCHILD = 2

_COUNTER_FIELDS = ("view_count", "hype_count", "cool_count", "reply_count", "share_count")


class ContentNode(BaseModel):
    """A unit of content: one video in a conversation tree.

    Every document read from the store is decoded through this model. Missing or
    null fields fall back to the declared defaults; ``thread_id`` defaults to the
    node's own id, negative counters clamp to zero and naive timestamps are read
    as UTC.
    """

    id: str = Field(..., min_length=1)
    creator_id: str = ""
    creator_name: str = "Unknown"
    created_at: datetime = Field(default_factory=utcnow)

    thread_id: str = ""
    reply_to_video_id: str | None = None
    conversation_depth: int = Field(default=DEPTH_THREAD, ge=0)

    view_count: int = 0
    hype_count: int = 0
    cool_count: int = 0
    reply_count: int = 0
    share_count: int = 0

    temperature: str = "neutral"
    discoverability_score: float = 0.5

    visibility: str = VISIBILITY_PUBLIC
    exclude_from_discovery: bool = False
    is_collection_segment: bool = False

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @model_validator(mode="before")
    @classmethod
    def _apply_document_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            data = {name: getattr(data, name, None) for name in cls.model_fields}

        cleaned = {key: value for key, value in data.items() if value is not None}

        for name in _COUNTER_FIELDS:
            if name in cleaned:
                cleaned[name] = max(0, int(cleaned[name]))

        if not cleaned.get("thread_id"):
            cleaned["thread_id"] = cleaned.get("id", "")

        created_at = cleaned.get("created_at")
        if isinstance(created_at, datetime):
            cleaned["created_at"] = as_utc(created_at)

        return cleaned

    @classmethod
    def from_record(cls, record: Any) -> ContentNode:
        """Decode an ORM row or a raw document mapping."""
        return cls.model_validate(record)

    @property
    def is_child(self) -> bool:
        return self.conversation_depth == DEPTH_CHILD

    @property
    def is_stepchild(self) -> bool:
        return self.conversation_depth >= DEPTH_STEPCHILD

    @property
    def is_discoverable(self) -> bool:
        """Return True when the node may be surfaced in discovery."""
        return (
            self.visibility == VISIBILITY_PUBLIC
            and not self.exclude_from_discovery
            and not self.is_collection_segment
        )
