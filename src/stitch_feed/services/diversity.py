"""Creator-diversity reordering for feed pages."""

from __future__ import annotations

import random
from collections import deque
from collections.abc import Iterable

from stitch_feed.schemas.video import ContentNode

MAX_AVOID_WINDOW = 5


def avoid_window(creator_count: int) -> int:
    """Return how many recent creators are skipped before one may repeat."""
    return min(MAX_AVOID_WINDOW, max(1, creator_count - 1))


def diversify(
    nodes: Iterable[ContentNode],
    *,
    rng: random.Random | None = None,
) -> list[ContentNode]:
    """Reorder ``nodes`` so consecutive items rarely share a creator.

    Items are bucketed per creator and each bucket is shuffled. Every step picks
    a random creator that is not among the last ``avoid_window`` creators
    emitted, falling back to any creator with items left. The output is a
    permutation of the input; fewer than two creators leaves the order alone.
    """
    items = list(nodes)
    if len(items) < 2:
        return items

    buckets: dict[str, list[ContentNode]] = {}
    for node in items:
        buckets.setdefault(node.creator_id, []).append(node)
    if len(buckets) < 2:
        return items

    chooser = rng or random.Random()
    for bucket in buckets.values():
        chooser.shuffle(bucket)

    recent: deque[str] = deque(maxlen=avoid_window(len(buckets)))
    result: list[ContentNode] = []
    while buckets:
        available = [creator for creator in buckets if creator not in recent]
        chosen = chooser.choice(available or list(buckets))
        bucket = buckets[chosen]
        result.append(bucket.pop())
        recent.append(chosen)
        if not bucket:
            del buckets[chosen]
    return result
