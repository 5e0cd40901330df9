"""Unit tests for new-item detection."""

from datetime import datetime, timedelta, timezone

import pytest

from feedbot.core.diff import DiffResult, compute_diff, to_utc_naive
from feedbot.core.source import FeedItem
from feedbot.exceptions import MissingTimestampError
from feedbot.models import ZERO_WATERMARK

T0 = datetime(2024, 5, 1, 12, 0)


def at(offset_minutes: int, title: str = "") -> FeedItem:
    return FeedItem(title=title or f"t0{offset_minutes:+d}", published_at=T0 + timedelta(minutes=offset_minutes))


class TestComputeDiff:
    """Tests for compute_diff."""

    def test_stops_at_first_old_item(self):
        """Items newer than the watermark are new; the first old one stops the scan."""
        items = [at(30), at(20), at(-10)]

        result = compute_diff(T0, items)

        assert [i.title for i in result.new_items] == ["t0+30", "t0+20"]
        assert result.watermark == T0 + timedelta(minutes=30)
        assert result.has_new_items is True

    def test_empty_feed(self):
        """An empty feed leaves the watermark unchanged."""
        result = compute_diff(T0, [])

        assert result.new_items == []
        assert result.watermark == T0
        assert result.has_new_items is False

    def test_nothing_new(self):
        """A feed whose newest item is not newer than the watermark yields nothing."""
        result = compute_diff(T0, [at(0), at(-5)])

        assert result.new_items == []
        assert result.watermark == T0

    def test_watermark_never_moves_backwards(self):
        """An older top item does not lower the watermark."""
        result = compute_diff(T0, [at(-30)])

        assert result.watermark == T0

    def test_first_poll_takes_everything(self):
        """A never-polled feed treats every item as new."""
        items = [at(2), at(1), at(0)]

        result = compute_diff(ZERO_WATERMARK, items)

        assert len(result.new_items) == 3
        assert result.watermark == T0 + timedelta(minutes=2)

    def test_watermark_is_front_item_not_max(self):
        """The next watermark comes from the first item even if a later one is newer."""
        items = [at(10), at(40), at(-1)]

        result = compute_diff(T0, items)

        assert len(result.new_items) == 2
        assert result.watermark == T0 + timedelta(minutes=10)

    def test_missing_timestamp_anywhere_rejects_feed(self):
        """One item without a timestamp makes the whole feed unusable."""
        items = [at(30), FeedItem(title="no date"), at(-10)]

        with pytest.raises(MissingTimestampError) as exc_info:
            compute_diff(T0, items, uri="https://example.com/feed.xml")

        assert exc_info.value.index == 1
        assert exc_info.value.uri == "https://example.com/feed.xml"

    def test_missing_timestamp_after_old_items_still_rejected(self):
        """Items past the watermark are checked as well."""
        items = [at(-1), at(-2), FeedItem(title="no date")]

        with pytest.raises(MissingTimestampError):
            compute_diff(T0, items)

    def test_aware_timestamps_are_normalized(self):
        """Timezone-aware item times compare in UTC against a naive watermark."""
        plus_two = timezone(timedelta(hours=2))
        items = [FeedItem(title="a", published_at=datetime(2024, 5, 1, 14, 30, tzinfo=plus_two))]

        result = compute_diff(T0, items)

        assert len(result.new_items) == 1
        assert result.watermark == datetime(2024, 5, 1, 12, 30)
        assert result.watermark.tzinfo is None


class TestDiffResult:
    """Tests for DiffResult."""

    def test_chronological_is_oldest_first(self):
        """Delivery order is the reverse of feed order."""
        result = DiffResult(watermark=T0, new_items=[at(3), at(2), at(1)])

        assert [i.title for i in result.chronological()] == ["t0+1", "t0+2", "t0+3"]


def test_to_utc_naive_leaves_naive_values():
    assert to_utc_naive(T0) is T0
