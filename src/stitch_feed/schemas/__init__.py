"""Pydantic schemas for the Stitch feed engine."""

from .feed import DiscoveryPage, FeedPage, FeedStats
from .lane import LaneInfo, ReplyCreate, ReplyDecision
from .video import ContentNode

__all__ = [
    "ContentNode",
    "DiscoveryPage",
    "FeedPage",
    "FeedStats",
    "LaneInfo",
    "ReplyCreate",
    "ReplyDecision",
]
