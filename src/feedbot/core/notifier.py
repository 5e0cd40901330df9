"""
Notifier: deliver one feed item to one channel.

The dispatcher depends only on the `Notifier` protocol. `DiscordNotifier`
posts through the Discord REST API, as a bot message or through a channel
webhook depending on the resolved policy.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

import httpx
from bs4 import BeautifulSoup

from feedbot import __version__
from feedbot.config import get_config
from feedbot.core.policy import DeliveryPolicy
from feedbot.core.source import FeedItem
from feedbot.logger import get_logger

logger = get_logger(__name__)


class DeliveryStatus(str, Enum):
    OK = "ok"
    PERMISSION_DENIED = "permission_denied"  # missing SEND/EMBED/MANAGE_WEBHOOKS
    NOT_FOUND = "not_found"  # channel deleted or not visible
    REJECTED = "rejected"  # this payload was refused
    TRANSIENT = "transient"  # timeout, rate limit, 5xx


@dataclass
class DeliveryResult:
    """Result of one delivery attempt."""

    channel_id: str
    status: DeliveryStatus = DeliveryStatus.OK
    detail: Optional[str] = None
    http_status: Optional[int] = None

    def __post_init__(self):
        if self.status is DeliveryStatus.OK and self.detail:
            raise ValueError("Successful delivery cannot have an error detail")

    @property
    def success(self) -> bool:
        return self.status is DeliveryStatus.OK

    @property
    def target_unusable(self) -> bool:
        """True when further items for this channel would fail the same way."""
        return self.status in (DeliveryStatus.PERMISSION_DENIED, DeliveryStatus.NOT_FOUND)


class Notifier(Protocol):
    """Anything that can post a feed item to a channel."""

    def deliver(self, channel_id: str, item: FeedItem, policy: DeliveryPolicy) -> DeliveryResult:
        ...


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _plain_text(html: Optional[str]) -> str:
    if not html:
        return ""
    return BeautifulSoup(html, "html.parser").get_text(" ", strip=True)


class DiscordNotifier:
    """Deliver items through the Discord REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        webhook_name: Optional[str] = None,
        max_content_length: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the notifier.

        Args:
            token: Bot token without the "Bot " prefix
            api_base: REST API base URL
            timeout_seconds: Per-request timeout
            webhook_name: Name of the channel webhook feedbot creates and reuses
            max_content_length: Character limit for message bodies
            transport: Optional httpx transport (used by tests)
        """
        config = get_config().notifier

        self.webhook_name = webhook_name or config.webhook_name
        self.max_content_length = max_content_length or config.max_content_length
        self._client = httpx.Client(
            base_url=api_base or config.api_base,
            timeout=timeout_seconds or config.timeout_seconds,
            headers={
                "Authorization": f"Bot {token or config.token}",
                "User-Agent": f"DiscordBot (https://github.com/foxbot/feedbot, {__version__})",
            },
            transport=transport,
        )

        # channel id -> (webhook id, webhook token)
        self._webhooks: dict[str, tuple[str, str]] = {}
        self._webhooks_lock = threading.Lock()

    def build_payload(self, item: FeedItem, policy: DeliveryPolicy) -> dict:
        """Build the JSON body for a message."""
        title = item.title or item.link or "New post"

        if policy.embeds:
            embed = {
                "title": _truncate(title, 256),
                "description": _truncate(_plain_text(item.content), min(self.max_content_length, 4096)),
            }
            if item.link:
                embed["url"] = item.link
            if item.published_at:
                embed["timestamp"] = item.published_at.isoformat()
            return {"embeds": [embed]}

        lines = [f"**{title}**"]
        if item.link:
            lines.append(item.link)
        return {"content": _truncate("\n".join(lines), self.max_content_length)}

    def deliver(self, channel_id: str, item: FeedItem, policy: DeliveryPolicy) -> DeliveryResult:
        """Post an item to a channel.

        Returns:
            DeliveryResult; never raises for HTTP or network failures
        """
        payload = self.build_payload(item, policy)

        try:
            if policy.webhooks:
                webhook_id, webhook_token = self._get_webhook(channel_id)
                response = self._client.post(f"/webhooks/{webhook_id}/{webhook_token}", json=payload)
                if response.status_code == 404:
                    # Webhook was deleted by someone; recreate on the next item
                    with self._webhooks_lock:
                        self._webhooks.pop(channel_id, None)
                    return DeliveryResult(
                        channel_id, DeliveryStatus.TRANSIENT, "webhook disappeared", http_status=404
                    )
            else:
                response = self._client.post(f"/channels/{channel_id}/messages", json=payload)
            response.raise_for_status()

        except httpx.HTTPStatusError as e:
            return self._classify(channel_id, e.response)

        except httpx.TimeoutException as e:
            return DeliveryResult(channel_id, DeliveryStatus.TRANSIENT, f"Timeout: {e}")

        except httpx.RequestError as e:
            return DeliveryResult(channel_id, DeliveryStatus.TRANSIENT, f"Request error: {e}")

        return DeliveryResult(channel_id, http_status=response.status_code)

    def _get_webhook(self, channel_id: str) -> tuple[str, str]:
        """Find or create feedbot's webhook in a channel.

        Raises:
            httpx.HTTPStatusError: If listing or creating webhooks is refused
        """
        with self._webhooks_lock:
            cached = self._webhooks.get(channel_id)
        if cached:
            return cached

        response = self._client.get(f"/channels/{channel_id}/webhooks")
        response.raise_for_status()
        for hook in response.json():
            if hook.get("name") == self.webhook_name and hook.get("token"):
                found = (str(hook["id"]), hook["token"])
                break
        else:
            response = self._client.post(
                f"/channels/{channel_id}/webhooks", json={"name": self.webhook_name}
            )
            response.raise_for_status()
            hook = response.json()
            found = (str(hook["id"]), hook["token"])
            logger.info(f"Created webhook {found[0]} in channel {channel_id}")

        with self._webhooks_lock:
            self._webhooks[channel_id] = found
        return found

    def _classify(self, channel_id: str, response: httpx.Response) -> DeliveryResult:
        code = response.status_code
        detail = f"HTTP {code}: {response.text[:200]}"

        if code in (401, 403):
            status = DeliveryStatus.PERMISSION_DENIED
        elif code == 404:
            status = DeliveryStatus.NOT_FOUND
        elif code == 429 or code >= 500:
            status = DeliveryStatus.TRANSIENT
        else:
            status = DeliveryStatus.REJECTED

        return DeliveryResult(channel_id, status, detail, http_status=code)

    def close(self) -> None:
        self._client.close()


def create_notifier() -> DiscordNotifier:
    """Create a configured DiscordNotifier instance."""
    return DiscordNotifier()
