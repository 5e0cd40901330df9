"""
Feed source adapter: fetch a feed URI and return its items newest-first.

The dispatcher only depends on the `FeedSource` protocol; `HttpFeedSource`
is the default implementation over httpx and feedparser.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

import feedparser
import httpx

from feedbot.config import get_config
from feedbot.exceptions import FetchError
from feedbot.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeedItem:
    """One entry of a fetched feed."""

    title: Optional[str] = None
    link: Optional[str] = None
    content: Optional[str] = None
    guid: Optional[str] = None
    published_at: Optional[datetime] = None


class FeedSource(Protocol):
    """Anything that can turn a feed URI into items."""

    def fetch(self, uri: str, timeout: float) -> list[FeedItem]:
        """Fetch and parse a feed.

        Args:
            uri: Feed URI
            timeout: Seconds allowed for the request

        Returns:
            Items in document order (newest first for well-behaved feeds)

        Raises:
            FetchError: On network, HTTP or parse failure
        """
        ...


def _struct_to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    # feedparser normalizes parsed dates to UTC struct_time
    if not value:
        return None
    return datetime(*value[:6])


def entry_to_item(entry: dict) -> FeedItem:
    """Convert a feedparser entry into a FeedItem.

    The publish date falls back to the updated date for Atom feeds that
    only carry <updated>.
    """
    content = None
    if entry.get("content"):
        content = entry["content"][0].get("value")
    if not content:
        content = entry.get("summary")

    published = entry.get("published_parsed") or entry.get("updated_parsed")

    return FeedItem(
        title=entry.get("title"),
        link=entry.get("link"),
        content=content,
        guid=entry.get("id") or entry.get("link"),
        published_at=_struct_to_datetime(published),
    )


class HttpFeedSource:
    """Fetch RSS/Atom feeds over HTTP with retry on transient errors."""

    def __init__(
        self,
        max_retries: Optional[int] = None,
        retry_delay_seconds: Optional[int] = None,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize feed source.

        Args:
            max_retries: Retries after the first attempt (no retry on 4xx)
            retry_delay_seconds: Base delay, multiplied by the attempt number
            user_agent: User-Agent header for HTTP requests
            transport: Optional httpx transport (used by tests)
        """
        config = get_config().fetcher

        self.max_retries = config.max_retries if max_retries is None else max_retries
        self.retry_delay_seconds = (
            config.retry_delay_seconds if retry_delay_seconds is None else retry_delay_seconds
        )
        self.user_agent = user_agent or config.user_agent
        self.follow_redirects = config.follow_redirects
        self.max_redirects = config.max_redirects
        self._transport = transport

    def fetch(self, uri: str, timeout: float) -> list[FeedItem]:
        """Fetch a feed and return its items in document order.

        `timeout` bounds the whole fetch, retries and backoff included.
        Retrying stops once the next attempt could not start before the
        deadline.

        Raises:
            FetchError: When every attempt failed, the deadline passed or
                the document is not a feed
        """
        deadline = time.monotonic() + timeout
        last_error: Optional[str] = None
        http_status: Optional[int] = None

        for attempt in range(self.max_retries + 1):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                last_error = f"Timeout: fetch deadline of {timeout}s reached after {last_error}"
                break

            try:
                response = self._fetch_http(uri, remaining)
                return self._parse(uri, response.content)

            except httpx.TimeoutException as e:
                last_error = f"Timeout: {e}"
                logger.warning(f"Timeout fetching {uri} (attempt {attempt + 1}/{self.max_retries + 1})")

            except httpx.HTTPStatusError as e:
                http_status = e.response.status_code
                last_error = f"HTTP {http_status}"

                if 400 <= http_status < 500:
                    break

                logger.warning(f"HTTP {http_status} fetching {uri} (attempt {attempt + 1})")

            except httpx.RequestError as e:
                last_error = f"Request error: {e}"
                logger.warning(f"Network error fetching {uri} (attempt {attempt + 1})")

            if attempt < self.max_retries:
                delay = self.retry_delay_seconds * (attempt + 1)
                if time.monotonic() + delay >= deadline:
                    last_error = f"Timeout: fetch deadline of {timeout}s reached after {last_error}"
                    logger.warning(f"Giving up on {uri}: fetch timeout of {timeout}s reached")
                    break
                time.sleep(delay)

        raise FetchError(uri, last_error or "Unknown error", http_status=http_status)

    def _fetch_http(self, uri: str, timeout: float) -> httpx.Response:
        """GET the feed document.

        Raises:
            httpx.TimeoutException: On timeout
            httpx.HTTPStatusError: On HTTP error status
            httpx.RequestError: On network error
        """
        with httpx.Client(
            timeout=timeout,
            follow_redirects=self.follow_redirects,
            max_redirects=self.max_redirects,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        ) as client:
            response = client.get(uri)
            response.raise_for_status()
            return response

    def _parse(self, uri: str, content: bytes) -> list[FeedItem]:
        parsed = feedparser.parse(content)

        # bozo with no recognisable feed structure means it wasn't a feed at all
        if parsed.get("bozo") and not parsed.get("entries") and not parsed.get("version"):
            reason = parsed.get("bozo_exception")
            raise FetchError(uri, f"Parse error: {reason}")

        items = [entry_to_item(entry) for entry in parsed.get("entries", [])]
        logger.debug(f"Fetched {len(items)} items from {uri}")
        return items


def create_source() -> HttpFeedSource:
    """Create a configured HttpFeedSource instance."""
    return HttpFeedSource()
