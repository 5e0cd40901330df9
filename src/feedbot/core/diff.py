"""
New-item detection.

Given a feed's stored watermark and its freshly fetched items, decide which
items are new and what the next watermark is. Feeds are assumed to list
items newest first; that ordering is not verified.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional, Sequence

from feedbot.core.source import FeedItem
from feedbot.exceptions import MissingTimestampError


def to_utc_naive(value: datetime) -> datetime:
    """Normalize a datetime to naive UTC, the form stored in the database."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@dataclass
class DiffResult:
    """Outcome of diffing one feed."""

    watermark: datetime
    new_items: list[FeedItem] = field(default_factory=list)

    @property
    def has_new_items(self) -> bool:
        return bool(self.new_items)

    def chronological(self) -> Iterator[FeedItem]:
        """Iterate new items oldest first, the order they are delivered in."""
        return reversed(self.new_items)


def compute_diff(
    watermark: datetime,
    items: Sequence[FeedItem],
    uri: Optional[str] = None,
) -> DiffResult:
    """Find items published after `watermark`.

    Every item must carry a timestamp; one missing timestamp anywhere makes
    the whole feed ambiguous and nothing is reported as new.

    Items are collected from the front until the first one that is not
    newer than the watermark. The next watermark is the front item's
    timestamp, even if a later collected item is newer.

    Args:
        watermark: Stored watermark (naive UTC)
        items: Fetched items, newest first
        uri: Feed URI, for error messages

    Returns:
        DiffResult with new items newest first

    Raises:
        MissingTimestampError: If any item lacks `published_at`
    """
    watermark = to_utc_naive(watermark)

    if not items:
        return DiffResult(watermark=watermark)

    for index, item in enumerate(items):
        if item.published_at is None:
            raise MissingTimestampError(uri, index)

    top = to_utc_naive(items[0].published_at)
    if top <= watermark:
        return DiffResult(watermark=watermark)

    new_items = []
    for item in items:
        if to_utc_naive(item.published_at) <= watermark:
            break
        new_items.append(item)

    return DiffResult(watermark=top, new_items=new_items)
