# src/stitch_feed/schemas/lane.py
"""Conversation lane schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from stitch_feed.schemas.video import ContentNode


def lane_key(anchor_id: str, participant_a: str, participant_b: str) -> tuple[str, str, str]:
    """Return the identity of a lane; participant order does not matter."""
    first, second = sorted((participant_a, participant_b))
    return (anchor_id, first, second)


class LaneInfo(BaseModel):
    """A private two-party lane anchored at a depth-1 child."""

    anchor_id: str
    participant_a: str = Field(..., description="Creator of the anchor child")
    participant_b: str = Field(..., description="Responder who opened the lane")
    responder_name: str = "Unknown"
    first_reply: ContentNode
    message_count: int = 0

    model_config = ConfigDict(frozen=True)

    @property
    def participant_ids(self) -> frozenset[str]:
        return frozenset((self.participant_a, self.participant_b))

    @property
    def key(self) -> tuple[str, str, str]:
        return lane_key(self.anchor_id, self.participant_a, self.participant_b)

    def is_participant(self, user_id: str) -> bool:
        return user_id in self.participant_ids


class ReplyDecision(BaseModel):
    """Outcome of a reply permission check."""

    allowed: bool
    reason: str

    model_config = ConfigDict(frozen=True)


class ReplyCreate(BaseModel):
    """Schema for recording a reply under an existing video."""

    video_id: str | None = Field(None, min_length=1, max_length=64, description="Client-chosen id")
    creator_name: str | None = Field(None, max_length=128)
