"""
Poll cycle: fetch every feed, detect new items, deliver them, advance watermarks.

One call to `Dispatcher.run_cycle()` is one cycle. Feeds are processed in
parallel on a bounded thread pool; each worker opens its own sessions and
shares nothing with the others. Per-feed and per-target problems are
collected into the returned error list instead of being raised.
"""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from feedbot.config import get_config
from feedbot.core.diff import DiffResult, compute_diff
from feedbot.core.notifier import DeliveryResult, DeliveryStatus, Notifier
from feedbot.core.policy import policy_for_target
from feedbot.core.source import FeedSource
from feedbot.exceptions import (
    FetchError,
    MissingTimestampError,
    NotFoundError,
    StoreUnavailableError,
)
from feedbot.logger import get_logger
from feedbot.models import FeedResponse, SubscriptionTarget, utc_now
from feedbot.storage.database import DatabaseManager
from feedbot.storage.repositories import FeedRepository, SubscriptionRepository

logger = get_logger(__name__)


class ErrorKind(str, Enum):
    FETCH = "fetch"
    MISSING_TIMESTAMP = "missing_timestamp"
    DELIVERY = "delivery"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CycleError:
    """One problem recorded during a cycle."""

    kind: ErrorKind
    feed_id: int
    feed_uri: str
    message: str
    guild_id: Optional[str] = None
    channel_id: Optional[str] = None
    subscription_id: Optional[int] = None
    delivery_status: Optional[DeliveryStatus] = None

    def __str__(self) -> str:
        where = f" -> channel {self.channel_id}" if self.channel_id else ""
        return f"[{self.kind.value}] {self.feed_uri}{where}: {self.message}"


@dataclass
class FeedOutcome:
    """What one worker did with one feed."""

    feed_id: int
    new_items: int = 0
    delivered: int = 0
    errors: list[CycleError] = field(default_factory=list)


@dataclass
class CycleStats:
    """Statistics for the last completed cycle."""

    started_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    feeds_checked: int = 0
    feeds_with_new_items: int = 0
    items_found: int = 0
    deliveries: int = 0
    errors: int = 0

    def add_outcome(self, outcome: FeedOutcome) -> None:
        self.feeds_checked += 1
        self.items_found += outcome.new_items
        self.deliveries += outcome.delivered
        self.errors += len(outcome.errors)
        if outcome.new_items:
            self.feeds_with_new_items += 1


class Dispatcher:
    """Runs poll cycles over every known feed."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        source: FeedSource,
        notifier: Notifier,
        max_workers: Optional[int] = None,
        fetch_timeout: Optional[float] = None,
    ):
        """Initialize dispatcher.

        Args:
            db_manager: DatabaseManager used to open one session per store call
            source: Feed source adapter
            notifier: Delivery adapter
            max_workers: Maximum feeds processed concurrently
            fetch_timeout: Seconds allowed for each feed fetch
        """
        config = get_config()

        self.db_manager = db_manager
        self.source = source
        self.notifier = notifier
        self.max_workers = max_workers or config.scheduler.max_workers
        self.fetch_timeout = fetch_timeout or config.fetcher.timeout_seconds
        self.last_stats = CycleStats()

    def run_cycle(self) -> list[CycleError]:
        """Run one poll cycle over all feeds.

        Returns:
            Every per-feed and per-target error of the cycle

        Raises:
            StoreUnavailableError: If the database cannot be used. When the
                feed list cannot be read nothing is fetched or delivered.
        """
        stats = CycleStats(started_at=utc_now())
        start_time = time.time()

        try:
            with self.db_manager.session() as session:
                feeds = [
                    FeedResponse.model_validate(feed)
                    for feed in FeedRepository(session).list_feeds()
                ]
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"couldn't retrieve feeds: {e}") from e

        logger.info(f"Poll cycle started for {len(feeds)} feeds")

        errors: list[CycleError] = []
        fatal: Optional[StoreUnavailableError] = None

        if feeds:
            with ThreadPoolExecutor(
                max_workers=min(self.max_workers, len(feeds)),
                thread_name_prefix="feed-worker",
            ) as pool:
                futures = {pool.submit(self._process_feed, feed): feed for feed in feeds}

                for future in as_completed(futures):
                    if future.cancelled():
                        continue
                    try:
                        outcome = future.result()
                    except StoreUnavailableError as e:
                        if fatal is None:
                            fatal = e
                            for pending in futures:
                                pending.cancel()
                        continue

                    stats.add_outcome(outcome)
                    errors.extend(outcome.errors)

        if fatal is not None:
            logger.error(f"Poll cycle aborted: {fatal}")
            raise fatal

        stats.duration_seconds = time.time() - start_time
        self.last_stats = stats

        logger.info(
            f"Poll cycle finished in {stats.duration_seconds:.2f}s: "
            f"{stats.items_found} new items, {stats.deliveries} deliveries, {len(errors)} errors"
        )
        return errors

    def _process_feed(self, feed: FeedResponse) -> FeedOutcome:
        """Fetch, diff, deliver and advance one feed.

        Raises:
            StoreUnavailableError: On database failure
        """
        try:
            return self._check_feed(feed)
        except SQLAlchemyError as e:
            raise StoreUnavailableError(f"database error while processing {feed.uri}: {e}") from e

    def _check_feed(self, feed: FeedResponse) -> FeedOutcome:
        log = get_logger(__name__, feed=feed.uri)
        outcome = FeedOutcome(feed_id=feed.id)

        try:
            items = self.source.fetch(feed.uri, timeout=self.fetch_timeout)
        except FetchError as e:
            log.warning(f"Skipping feed: {e.reason}")
            outcome.errors.append(self._feed_error(ErrorKind.FETCH, feed, str(e)))
            return outcome
        except Exception as e:
            log.exception("Unexpected error fetching feed")
            outcome.errors.append(
                self._feed_error(ErrorKind.FETCH, feed, f"Unexpected error: {type(e).__name__}: {e}")
            )
            return outcome

        try:
            diff = compute_diff(feed.watermark, items, uri=feed.uri)
        except MissingTimestampError as e:
            log.warning(f"Skipping feed: {e}")
            outcome.errors.append(self._feed_error(ErrorKind.MISSING_TIMESTAMP, feed, str(e)))
            return outcome

        if not diff.has_new_items:
            log.debug("No new items")
            return outcome

        outcome.new_items = len(diff.new_items)

        with self.db_manager.session() as session:
            targets = SubscriptionRepository(session).list_for_feed(feed.id)

        for target in targets:
            delivered, target_errors = self._deliver_to_target(feed, target, diff)
            outcome.delivered += delivered
            outcome.errors.extend(target_errors)

        # Advance even after failed deliveries so a broken channel
        # cannot cause the same items to be resent every cycle.
        try:
            with self.db_manager.session() as session:
                FeedRepository(session).advance_watermark(feed.id, diff.watermark)
        except NotFoundError as e:
            log.warning("Feed disappeared during the cycle")
            outcome.errors.append(self._feed_error(ErrorKind.NOT_FOUND, feed, str(e)))

        log.info(
            f"Handled {outcome.new_items} new items "
            f"({outcome.delivered} deliveries to {len(targets)} channels)"
        )
        return outcome

    def _deliver_to_target(
        self, feed: FeedResponse, target: SubscriptionTarget, diff: DiffResult
    ) -> tuple[int, list[CycleError]]:
        """Deliver new items to one channel, oldest first.

        Returns:
            Number of successful deliveries and the errors recorded
        """
        log = get_logger(
            __name__, feed=feed.uri, guild=target.guild_id, channel=target.channel_id
        )
        policy = policy_for_target(target)
        delivered = 0
        errors = []

        for item in diff.chronological():
            try:
                result = self.notifier.deliver(target.channel_id, item, policy)
            except Exception as e:
                log.exception("Notifier raised")
                result = DeliveryResult(
                    target.channel_id,
                    DeliveryStatus.TRANSIENT,
                    f"Unexpected error: {type(e).__name__}: {e}",
                )

            if result.success:
                delivered += 1
                continue

            log.warning(f"Delivery failed: {result.status.value} {result.detail or ''}")
            errors.append(
                CycleError(
                    kind=ErrorKind.DELIVERY,
                    feed_id=feed.id,
                    feed_uri=feed.uri,
                    message=result.detail or result.status.value,
                    guild_id=target.guild_id,
                    channel_id=target.channel_id,
                    subscription_id=target.subscription_id,
                    delivery_status=result.status,
                )
            )
            if result.target_unusable:
                break

        return delivered, errors

    def close(self) -> None:
        """Release the source and notifier clients, if they hold any."""
        for adapter in (self.source, self.notifier):
            close = getattr(adapter, "close", None)
            if close is not None:
                close()

    @staticmethod
    def _feed_error(kind: ErrorKind, feed: FeedResponse, message: str) -> CycleError:
        return CycleError(kind=kind, feed_id=feed.id, feed_uri=feed.uri, message=message)


def create_dispatcher(
    db_manager: DatabaseManager,
    source: Optional[FeedSource] = None,
    notifier: Optional[Notifier] = None,
) -> Dispatcher:
    """Create a Dispatcher wired to the default HTTP source and Discord notifier."""
    if source is None:
        from feedbot.core.source import create_source

        source = create_source()
    if notifier is None:
        from feedbot.core.notifier import create_notifier

        notifier = create_notifier()
    return Dispatcher(db_manager=db_manager, source=source, notifier=notifier)
