"""Shared fixtures for feedbot tests."""

from datetime import datetime
from typing import Optional

import pytest
from sqlalchemy.orm import Session

from feedbot.core.notifier import DeliveryResult, DeliveryStatus
from feedbot.core.policy import DeliveryPolicy
from feedbot.core.source import FeedItem
from feedbot.exceptions import FetchError
from feedbot.storage.database import DatabaseManager
from feedbot.storage.repositories import (
    FeedRepository,
    GuildConfigRepository,
    SubscriptionRepository,
)

GUILD_ID = "100"
OWNER_ID = "900"


@pytest.fixture
def db_manager(tmp_path):
    """File-backed SQLite database, so worker threads get real connections."""
    manager = DatabaseManager(str(tmp_path / "feedbot.db"))
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture
def db_session(db_manager: DatabaseManager) -> Session:
    """Session committed when the test finishes."""
    with db_manager.session() as session:
        yield session


@pytest.fixture
def guild(db_manager: DatabaseManager) -> str:
    """Installed guild with both defaults off."""
    with db_manager.session() as session:
        GuildConfigRepository(session).create(GUILD_ID, contact=f"u:{OWNER_ID}")
    return GUILD_ID


def subscribe(db_manager: DatabaseManager, guild_id: str, channel_id: str, uri: str) -> int:
    """Create feed and subscription, return the subscription ID."""
    with db_manager.session() as session:
        feed = FeedRepository(session).get_or_create(uri)
        return SubscriptionRepository(session).create(channel_id, feed.id, guild_id).id


def get_watermark(db_manager: DatabaseManager, uri: str) -> datetime:
    with db_manager.session() as session:
        return FeedRepository(session).get_by_uri(uri).watermark


def item(minute: int, title: Optional[str] = None, day: int = 1) -> FeedItem:
    """Feed item published at 2024-05-<day> 12:<minute>."""
    return FeedItem(
        title=title or f"post {day}-{minute}",
        link=f"https://example.com/{day}/{minute}",
        content="<p>body</p>",
        guid=f"{day}-{minute}",
        published_at=datetime(2024, 5, day, 12, minute),
    )


class StubSource:
    """FeedSource returning canned items per URI."""

    def __init__(self, feeds: Optional[dict] = None):
        self.feeds = dict(feeds or {})
        self.calls: list[str] = []

    def fetch(self, uri: str, timeout: float) -> list[FeedItem]:
        self.calls.append(uri)
        value = self.feeds.get(uri, [])
        if isinstance(value, Exception):
            raise value
        return list(value)


class RecordingNotifier:
    """Notifier that records every delivery and answers with fixed statuses."""

    def __init__(self, statuses: Optional[dict] = None, default: DeliveryStatus = DeliveryStatus.OK):
        self.statuses = dict(statuses or {})
        self.default = default
        self.sent: list[tuple[str, FeedItem, DeliveryPolicy]] = []

    def deliver(self, channel_id: str, item: FeedItem, policy: DeliveryPolicy) -> DeliveryResult:
        self.sent.append((channel_id, item, policy))
        status = self.statuses.get(channel_id, self.default)
        if status is DeliveryStatus.OK:
            return DeliveryResult(channel_id)
        return DeliveryResult(channel_id, status, f"{status.value} for test")

    def titles_for(self, channel_id: str) -> list[str]:
        return [entry.title for channel, entry, _ in self.sent if channel == channel_id]


@pytest.fixture
def source() -> StubSource:
    return StubSource()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def fetch_failure(uri: str) -> FetchError:
    return FetchError(uri, "HTTP 500", http_status=500)
