"""Tests for the poll cycle dispatcher."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httpx
import pytest
from loguru import logger as _logger
from sqlalchemy.exc import OperationalError

from feedbot.core.dispatcher import CycleError, Dispatcher, ErrorKind, create_dispatcher
from feedbot.core.notifier import DeliveryResult, DeliveryStatus, DiscordNotifier
from feedbot.core.policy import DeliveryPolicy
from feedbot.core.source import FeedItem
from feedbot.exceptions import NotFoundError, StoreUnavailableError
from feedbot.models import ZERO_WATERMARK, TriState
from feedbot.storage.database import DatabaseManager
from feedbot.storage.repositories import (
    FeedRepository,
    GuildConfigRepository,
    SubscriptionRepository,
)

from tests.conftest import (
    RecordingNotifier,
    StubSource,
    fetch_failure,
    get_watermark,
    item,
    subscribe,
)

FEED_A = "https://a.example/rss"
FEED_B = "https://b.example/rss"
FEED_C = "https://c.example/rss"


def db_down() -> OperationalError:
    return OperationalError("SELECT", {}, Exception("database is unreachable"))


@pytest.fixture
def dispatcher(db_manager: DatabaseManager, source: StubSource, notifier: RecordingNotifier) -> Dispatcher:
    return Dispatcher(db_manager, source, notifier, max_workers=3, fetch_timeout=5)


class TestRunCycle:
    """Tests for Dispatcher.run_cycle."""

    def test_no_feeds(self, dispatcher: Dispatcher, source: StubSource):
        assert dispatcher.run_cycle() == []
        assert source.calls == []

    def test_delivers_new_items_and_advances(
        self, db_manager, guild, dispatcher, source, notifier
    ):
        """New items are delivered and the watermark moves to the newest one."""
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(3), item(2), item(1)]

        errors = dispatcher.run_cycle()

        assert errors == []
        assert len(notifier.sent) == 3
        assert get_watermark(db_manager, FEED_A) == datetime(2024, 5, 1, 12, 3)
        assert dispatcher.last_stats.items_found == 3
        assert dispatcher.last_stats.deliveries == 3

    def test_delivers_oldest_first(self, db_manager, guild, dispatcher, source, notifier):
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(3, "third"), item(2, "second"), item(1, "first")]

        dispatcher.run_cycle()

        assert notifier.titles_for("42") == ["first", "second", "third"]

    def test_no_redelivery_on_next_cycle(self, db_manager, guild, dispatcher, source, notifier):
        """Items handled once are never sent again."""
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(2), item(1)]
        dispatcher.run_cycle()
        notifier.sent.clear()

        source.feeds[FEED_A] = [item(5, "fresh"), item(2), item(1)]
        dispatcher.run_cycle()

        assert notifier.titles_for("42") == ["fresh"]

        notifier.sent.clear()
        dispatcher.run_cycle()
        assert notifier.sent == []

    def test_one_failing_feed_does_not_block_others(
        self, db_manager, guild, dispatcher, source, notifier
    ):
        """A fetch failure yields exactly one error; other feeds are processed."""
        for uri in (FEED_A, FEED_B, FEED_C):
            subscribe(db_manager, guild, "42", uri)
        source.feeds[FEED_A] = [item(1, "a")]
        source.feeds[FEED_B] = fetch_failure(FEED_B)
        source.feeds[FEED_C] = [item(2, "c")]

        errors = dispatcher.run_cycle()

        assert len(errors) == 1
        assert errors[0].kind is ErrorKind.FETCH
        assert errors[0].feed_uri == FEED_B
        assert sorted(notifier.titles_for("42")) == ["a", "c"]
        assert get_watermark(db_manager, FEED_B) == ZERO_WATERMARK
        assert get_watermark(db_manager, FEED_A) == datetime(2024, 5, 1, 12, 1)
        assert get_watermark(db_manager, FEED_C) == datetime(2024, 5, 1, 12, 2)

    def test_unexpected_source_exception_is_collected(
        self, db_manager, guild, dispatcher, source, notifier
    ):
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = ValueError("parser exploded")

        errors = dispatcher.run_cycle()

        assert [e.kind for e in errors] == [ErrorKind.FETCH]
        assert "parser exploded" in errors[0].message

    def test_missing_timestamp_delivers_nothing(
        self, db_manager, guild, dispatcher, source, notifier
    ):
        """An item without a date blocks the feed and keeps the watermark."""
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(3), FeedItem(title="undated"), item(1)]

        errors = dispatcher.run_cycle()

        assert [e.kind for e in errors] == [ErrorKind.MISSING_TIMESTAMP]
        assert notifier.sent == []
        assert get_watermark(db_manager, FEED_A) == ZERO_WATERMARK

    def test_failing_notifier_still_advances_watermark(self, db_manager, guild, source):
        """Delivery failures are reported once and never retried next cycle."""
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(2), item(1)]
        notifier = RecordingNotifier(default=DeliveryStatus.TRANSIENT)
        dispatcher = Dispatcher(db_manager, source, notifier, max_workers=2)

        errors = dispatcher.run_cycle()

        assert len(errors) == 2
        assert all(e.kind is ErrorKind.DELIVERY for e in errors)
        assert all(e.delivery_status is DeliveryStatus.TRANSIENT for e in errors)
        assert get_watermark(db_manager, FEED_A) == datetime(2024, 5, 1, 12, 2)

        notifier.sent.clear()
        assert dispatcher.run_cycle() == []
        assert notifier.sent == []

    def test_unusable_target_stops_only_that_target(self, db_manager, guild, source):
        """A permission failure skips the rest of the items for that channel only."""
        subscribe(db_manager, guild, "42", FEED_A)
        subscribe(db_manager, guild, "43", FEED_A)
        source.feeds[FEED_A] = [item(3), item(2), item(1)]
        notifier = RecordingNotifier(statuses={"42": DeliveryStatus.PERMISSION_DENIED})
        dispatcher = Dispatcher(db_manager, source, notifier)

        errors = dispatcher.run_cycle()

        assert len(notifier.titles_for("42")) == 1
        assert len(notifier.titles_for("43")) == 3
        assert len(errors) == 1
        assert errors[0].channel_id == "42"
        assert errors[0].guild_id == guild
        assert errors[0].delivery_status is DeliveryStatus.PERMISSION_DENIED

    def test_notifier_exception_is_transient(self, db_manager, guild, source):
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(2), item(1)]

        class ExplodingNotifier:
            def deliver(self, channel_id, item, policy):
                raise ConnectionError("socket closed")

        errors = Dispatcher(db_manager, source, ExplodingNotifier()).run_cycle()

        assert len(errors) == 2
        assert all(e.delivery_status is DeliveryStatus.TRANSIENT for e in errors)
        assert get_watermark(db_manager, FEED_A) == datetime(2024, 5, 1, 12, 2)

    def test_policy_resolved_per_target(self, db_manager, guild, dispatcher, source, notifier):
        """Guild defaults apply unless the subscription overrides them."""
        sub_id = subscribe(db_manager, guild, "42", FEED_A)
        subscribe(db_manager, guild, "43", FEED_A)
        with db_manager.session() as session:
            GuildConfigRepository(session).set_default_embeds(guild, True)
            SubscriptionRepository(session).set_override_webhooks(sub_id, TriState.ON)
        source.feeds[FEED_A] = [item(1)]

        dispatcher.run_cycle()

        policies = {channel: policy for channel, _, policy in notifier.sent}
        assert policies["42"] == DeliveryPolicy(embeds=True, webhooks=True)
        assert policies["43"] == DeliveryPolicy(embeds=True, webhooks=False)

    def test_feed_removed_during_cycle(self, db_manager, guild, dispatcher, source, notifier):
        """A vanished feed is reported, not raised."""
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(1)]

        with patch.object(
            FeedRepository, "advance_watermark", side_effect=NotFoundError("feed", 1)
        ):
            errors = dispatcher.run_cycle()

        assert [e.kind for e in errors] == [ErrorKind.NOT_FOUND]
        assert len(notifier.sent) == 1

    def test_records_start_time_in_utc(self, dispatcher):
        before = datetime.now(timezone.utc).replace(tzinfo=None)

        dispatcher.run_cycle()

        started_at = dispatcher.last_stats.started_at
        assert started_at.tzinfo is None
        assert before <= started_at <= datetime.now(timezone.utc).replace(tzinfo=None)

    def test_logs_bind_feed_and_channel(self, db_manager, guild, source):
        """Warnings carry the feed and channel they concern as bound extras."""
        subscribe(db_manager, guild, "42", FEED_A)
        subscribe(db_manager, guild, "43", FEED_B)
        source.feeds[FEED_A] = [item(1)]
        source.feeds[FEED_B] = fetch_failure(FEED_B)
        notifier = RecordingNotifier(statuses={"42": DeliveryStatus.PERMISSION_DENIED})
        dispatcher = Dispatcher(db_manager, source, notifier, max_workers=1, fetch_timeout=5)

        messages = []
        handler_id = _logger.add(messages.append, level="WARNING")
        try:
            dispatcher.run_cycle()
        finally:
            _logger.remove(handler_id)

        bound = {
            (m.record["extra"].get("feed"), m.record["extra"].get("channel")): m.record["message"]
            for m in messages
        }
        assert bound[(FEED_A, "42")].startswith("Delivery failed: permission_denied")
        assert bound[(FEED_B, None)] == "Skipping feed: HTTP 500"


class TestClose:
    """Tests for Dispatcher.close."""

    def test_closes_adapters_that_hold_clients(self, db_manager):
        source = MagicMock()
        notifier = MagicMock()
        dispatcher = Dispatcher(db_manager, source, notifier)

        dispatcher.close()

        source.close.assert_called_once_with()
        notifier.close.assert_called_once_with()

    def test_adapters_without_close_are_skipped(self, dispatcher, notifier):
        dispatcher.close()

        assert not hasattr(notifier, "close")

    def test_discord_client_is_closed(self, db_manager, source):
        notifier = DiscordNotifier(token="t", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        dispatcher = Dispatcher(db_manager, source, notifier)

        dispatcher.close()

        assert notifier._client.is_closed


class TestStoreUnavailable:
    """Tests for database failures during a cycle."""

    def test_feed_listing_failure_aborts_before_fetching(
        self, db_manager, guild, dispatcher, source, notifier
    ):
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(1)]

        with patch.object(FeedRepository, "list_feeds", side_effect=db_down()):
            with pytest.raises(StoreUnavailableError):
                dispatcher.run_cycle()

        assert source.calls == []
        assert notifier.sent == []

    def test_worker_failure_is_raised(self, db_manager, guild, dispatcher, source):
        subscribe(db_manager, guild, "42", FEED_A)
        source.feeds[FEED_A] = [item(1)]

        with patch.object(SubscriptionRepository, "list_for_feed", side_effect=db_down()):
            with pytest.raises(StoreUnavailableError):
                dispatcher.run_cycle()

        assert get_watermark(db_manager, FEED_A) == ZERO_WATERMARK


class TestCycleError:
    """Tests for CycleError."""

    def test_str(self):
        error = CycleError(
            kind=ErrorKind.DELIVERY,
            feed_id=1,
            feed_uri=FEED_A,
            message="HTTP 403",
            channel_id="42",
        )

        assert str(error) == f"[delivery] {FEED_A} -> channel 42: HTTP 403"


class TestDeliveryResult:
    """Tests for DeliveryResult."""

    def test_ok_cannot_carry_detail(self):
        with pytest.raises(ValueError):
            DeliveryResult("42", DeliveryStatus.OK, "should not be here")

    def test_target_unusable(self):
        assert DeliveryResult("42", DeliveryStatus.NOT_FOUND, "gone").target_unusable is True
        assert DeliveryResult("42", DeliveryStatus.TRANSIENT, "slow").target_unusable is False


def test_create_dispatcher_uses_given_adapters(db_manager, source, notifier):
    dispatcher = create_dispatcher(db_manager, source=source, notifier=notifier)

    assert dispatcher.source is source
    assert dispatcher.notifier is notifier
    assert dispatcher.max_workers >= 1
