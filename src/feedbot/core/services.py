"""
Facade services for the command layer.

Chat commands and scripts go through these services instead of opening
sessions and calling repositories themselves. Each method is one
transaction and returns pydantic read models, never live ORM objects.

Example:
    from feedbot.core.services import GuildService, SubscriptionService

    guilds = GuildService(db_manager)
    guilds.install("1234", owner_id="5678")

    subs = SubscriptionService(db_manager)
    result = subs.subscribe("1234", "42", "https://example.com/feed.xml")
"""

from dataclasses import dataclass

from feedbot.exceptions import AlreadyExistsError, NotFoundError
from feedbot.logger import get_logger
from feedbot.models import (
    GuildConfigResponse,
    OverrideResponse,
    SubscriptionModel,
    SubscriptionResponse,
    TriState,
)
from feedbot.storage.database import DatabaseManager
from feedbot.storage.repositories import (
    FeedRepository,
    GuildConfigRepository,
    SubscriptionRepository,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class SubscribeResult:
    """Outcome of a subscribe command.

    `created` is False when the channel was already subscribed; the
    subscription is then the one that already existed.
    """

    created: bool
    subscription: SubscriptionResponse


def _require_in_guild(
    repo: SubscriptionRepository, guild_id: str, subscription_id: int
) -> SubscriptionModel:
    # Subscriptions of other guilds are reported as missing
    subscription = repo.get(subscription_id)
    if subscription.guild_id != guild_id:
        raise NotFoundError(repo.entity_name, subscription_id)
    return subscription


class SubscriptionService:
    """Subscribe, unsubscribe and tune channel subscriptions."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def subscribe(self, guild_id: str, channel_id: str, uri: str) -> SubscribeResult:
        """Subscribe a channel to a feed, creating the feed if it is new.

        Raises:
            NotFoundError: If the guild has no config
        """
        with self.db_manager.session() as session:
            feed = FeedRepository(session).get_or_create(uri)
            try:
                subscription = SubscriptionRepository(session).create(channel_id, feed.id, guild_id)
            except AlreadyExistsError as e:
                logger.debug(f"Channel {channel_id} already subscribed to {uri}")
                return SubscribeResult(False, SubscriptionResponse.from_model(e.existing))

            logger.info(f"Subscribed channel {channel_id} in guild {guild_id} to {uri}")
            return SubscribeResult(True, SubscriptionResponse.from_model(subscription))

    def unsubscribe(self, guild_id: str, subscription_id: int) -> SubscriptionResponse:
        """Remove a subscription and, if it was the last one, its feed.

        Returns:
            Snapshot of the removed subscription

        Raises:
            NotFoundError: If the subscription does not exist in this guild
        """
        with self.db_manager.session() as session:
            repo = SubscriptionRepository(session)
            subscription = _require_in_guild(repo, guild_id, subscription_id)
            removed = SubscriptionResponse.from_model(subscription)

            repo.delete(subscription_id)
            pruned = FeedRepository(session).prune_orphans([removed.feed_id])

        logger.info(
            f"Unsubscribed channel {removed.channel_id} from {removed.feed_uri}"
            + (" (feed removed)" if pruned else "")
        )
        return removed

    def list_subscriptions(self, guild_id: str) -> list[SubscriptionResponse]:
        with self.db_manager.session() as session:
            return [
                SubscriptionResponse.from_model(sub)
                for sub in SubscriptionRepository(session).list_for_guild(guild_id)
            ]

    def move(self, guild_id: str, subscription_id: int, channel_id: str) -> SubscriptionResponse:
        """Move a subscription to another channel of the same guild.

        Raises:
            NotFoundError: If the subscription does not exist in this guild
            AlreadyExistsError: If the channel already subscribes to the feed
        """
        with self.db_manager.session() as session:
            repo = SubscriptionRepository(session)
            subscription = _require_in_guild(repo, guild_id, subscription_id)
            repo.set_channel(subscription_id, channel_id)
            session.refresh(subscription)
            return SubscriptionResponse.from_model(subscription)

    def set_embeds(self, guild_id: str, subscription_id: int, value: TriState) -> OverrideResponse:
        """Set the embeds override of a subscription."""
        with self.db_manager.session() as session:
            repo = SubscriptionRepository(session)
            _require_in_guild(repo, guild_id, subscription_id)
            repo.set_override_embeds(subscription_id, value)
            return self._override(session, repo, subscription_id)

    def set_webhooks(self, guild_id: str, subscription_id: int, value: TriState) -> OverrideResponse:
        """Set the webhooks override of a subscription."""
        with self.db_manager.session() as session:
            repo = SubscriptionRepository(session)
            _require_in_guild(repo, guild_id, subscription_id)
            repo.set_override_webhooks(subscription_id, value)
            return self._override(session, repo, subscription_id)

    @staticmethod
    def _override(session, repo: SubscriptionRepository, subscription_id: int) -> OverrideResponse:
        override = repo.get_override(subscription_id)
        session.refresh(override)
        return OverrideResponse.model_validate(override)


class GuildService:
    """Guild lifecycle and guild-wide defaults."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def install(self, guild_id: str, owner_id: str) -> GuildConfigResponse:
        """Create the config for a guild the bot joined.

        The owner becomes the contact and both defaults start off. Joining
        a guild that is already known keeps its existing config.
        """
        with self.db_manager.session() as session:
            try:
                guild = GuildConfigRepository(session).create(guild_id, contact=f"u:{owner_id}")
            except AlreadyExistsError as e:
                logger.warning(f"Guild {guild_id} already has a config, keeping it")
                return GuildConfigResponse.model_validate(e.existing)

            logger.info(f"Installed guild {guild_id}")
            return GuildConfigResponse.model_validate(guild)

    def uninstall(self, guild_id: str) -> int:
        """Remove everything stored for a guild.

        Returns:
            Number of feeds deleted because no subscription was left

        Raises:
            NotFoundError: If the guild is unknown
        """
        with self.db_manager.session() as session:
            pruned = GuildConfigRepository(session).destroy(guild_id)

        logger.info(f"Uninstalled guild {guild_id}, removed {pruned} orphaned feeds")
        return pruned

    def get_config(self, guild_id: str) -> GuildConfigResponse:
        with self.db_manager.session() as session:
            return GuildConfigResponse.model_validate(GuildConfigRepository(session).get(guild_id))

    def set_contact(self, guild_id: str, contact: str) -> GuildConfigResponse:
        """Set the emergency contact, "u:<user id>" or "c:<channel id>"."""
        if not contact.startswith(("u:", "c:")) or len(contact) < 3:
            raise ValueError(f"Contact must look like 'u:<id>' or 'c:<id>', got {contact!r}")
        return self._update(guild_id, "set_contact", contact)

    def set_default_embeds(self, guild_id: str, enabled: bool) -> GuildConfigResponse:
        return self._update(guild_id, "set_default_embeds", enabled)

    def set_default_webhooks(self, guild_id: str, enabled: bool) -> GuildConfigResponse:
        return self._update(guild_id, "set_default_webhooks", enabled)

    def _update(self, guild_id: str, method: str, value) -> GuildConfigResponse:
        with self.db_manager.session() as session:
            repo = GuildConfigRepository(session)
            getattr(repo, method)(guild_id, value)
            guild = repo.get(guild_id)
            session.refresh(guild)
            return GuildConfigResponse.model_validate(guild)


def create_subscription_service(db_manager: DatabaseManager) -> SubscriptionService:
    """Create a SubscriptionService instance."""
    return SubscriptionService(db_manager)


def create_guild_service(db_manager: DatabaseManager) -> GuildService:
    """Create a GuildService instance."""
    return GuildService(db_manager)
