"""
Subscription repository: channel/feed bindings and their overrides.
"""

from typing import Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from feedbot.exceptions import AlreadyExistsError, NotFoundError
from feedbot.models import (
    FeedModel,
    GuildConfigModel,
    OverrideModel,
    SubscriptionModel,
    SubscriptionTarget,
    TriState,
    utc_now,
)
from feedbot.storage.repositories.base import BaseRepository


class SubscriptionRepository(BaseRepository[SubscriptionModel]):
    """Repository for Subscription and Override rows."""

    entity_name = "subscription"

    def __init__(self, session: Session) -> None:
        super().__init__(session, SubscriptionModel)

    def get(self, subscription_id: int) -> SubscriptionModel:
        """Get a subscription by ID.

        Raises:
            NotFoundError: If the subscription does not exist
        """
        return self.require(subscription_id)

    def get_by_channel_feed(self, channel_id: str, feed_id: int) -> Optional[SubscriptionModel]:
        """Get the subscription binding `feed_id` to `channel_id`, if any."""
        return (
            self.session.query(SubscriptionModel)
            .filter(SubscriptionModel.channel_id == channel_id)
            .filter(SubscriptionModel.feed_id == feed_id)
            .first()
        )

    def create(self, channel_id: str, feed_id: int, guild_id: str) -> SubscriptionModel:
        """Subscribe a channel to a feed.

        Inserts the subscription and its all-inherit override in the
        caller's transaction.

        Args:
            channel_id: Target channel
            feed_id: Feed to deliver
            guild_id: Guild the channel belongs to

        Returns:
            Created SubscriptionModel

        Raises:
            AlreadyExistsError: If the channel already subscribes to the feed;
                `existing` holds that subscription
            NotFoundError: If the guild config or the feed does not exist
        """
        if self.session.get(GuildConfigModel, guild_id) is None:
            raise NotFoundError("guild", guild_id)
        if self.session.get(FeedModel, feed_id) is None:
            raise NotFoundError("feed", feed_id)

        stmt = self.dialect.insert_ignore(
            SubscriptionModel.__table__, ["channel_id", "feed_id"]
        ).values(
            guild_id=guild_id,
            channel_id=channel_id,
            feed_id=feed_id,
            created_at=utc_now(),
        )
        result = self.session.execute(stmt)

        subscription = self.get_by_channel_feed(channel_id, feed_id)
        if result.rowcount == 0:
            raise AlreadyExistsError(self.entity_name, subscription)

        self.session.add(
            OverrideModel(
                subscription_id=subscription.id,
                embeds=TriState.INHERIT,
                webhooks=TriState.INHERIT,
            )
        )
        self.session.flush()
        self.session.refresh(subscription)
        return subscription

    def list_for_guild(self, guild_id: str) -> list[SubscriptionModel]:
        """Get all subscriptions in a guild, oldest first."""
        return self.list(guild_id=guild_id)

    def list_for_feed(self, feed_id: int) -> list[SubscriptionTarget]:
        """Get every delivery target of a feed in one query.

        Each target carries the feed URI, the guild defaults and the
        subscription override so the dispatcher can resolve policy without
        further reads.
        """
        rows = (
            self.session.query(
                SubscriptionModel,
                FeedModel.uri,
                GuildConfigModel.default_embeds,
                GuildConfigModel.default_webhooks,
                OverrideModel.embeds,
                OverrideModel.webhooks,
            )
            .join(FeedModel, FeedModel.id == SubscriptionModel.feed_id)
            .join(GuildConfigModel, GuildConfigModel.id == SubscriptionModel.guild_id)
            .outerjoin(OverrideModel, OverrideModel.subscription_id == SubscriptionModel.id)
            .filter(SubscriptionModel.feed_id == feed_id)
            .order_by(SubscriptionModel.id)
            .all()
        )

        return [
            SubscriptionTarget(
                subscription_id=sub.id,
                guild_id=sub.guild_id,
                channel_id=sub.channel_id,
                feed_id=sub.feed_id,
                feed_uri=uri,
                default_embeds=default_embeds,
                default_webhooks=default_webhooks,
                override_embeds=embeds or TriState.INHERIT,
                override_webhooks=webhooks or TriState.INHERIT,
            )
            for sub, uri, default_embeds, default_webhooks, embeds, webhooks in rows
        ]

    def delete(self, subscription_id: int) -> None:
        """Delete a subscription; its override is removed by the FK cascade.

        Raises:
            NotFoundError: If no subscription was deleted
        """
        result = self.session.execute(
            delete(SubscriptionModel)
            .where(SubscriptionModel.id == subscription_id)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise NotFoundError(self.entity_name, subscription_id)
        self.session.flush()

    def set_channel(self, subscription_id: int, channel_id: str) -> None:
        """Move a subscription to another channel.

        Raises:
            NotFoundError: If the subscription does not exist
            AlreadyExistsError: If the target channel already subscribes
                to the same feed
        """
        subscription = self.get(subscription_id)
        clash = self.get_by_channel_feed(channel_id, subscription.feed_id)
        if clash is not None and clash.id != subscription_id:
            raise AlreadyExistsError(self.entity_name, clash)

        self._update_where(SubscriptionModel.id, subscription_id, channel_id=channel_id)

    def set_override_embeds(self, subscription_id: int, value: TriState) -> None:
        """Set the embeds override of a subscription.

        Raises:
            NotFoundError: If the subscription has no override row
        """
        self._update_where(OverrideModel.subscription_id, subscription_id, embeds=TriState(value))

    def set_override_webhooks(self, subscription_id: int, value: TriState) -> None:
        """Set the webhooks override of a subscription.

        Raises:
            NotFoundError: If the subscription has no override row
        """
        self._update_where(
            OverrideModel.subscription_id, subscription_id, webhooks=TriState(value)
        )

    def get_override(self, subscription_id: int) -> OverrideModel:
        """Get the override of a subscription.

        Raises:
            NotFoundError: If the subscription has no override row
        """
        override = (
            self.session.query(OverrideModel)
            .filter(OverrideModel.subscription_id == subscription_id)
            .first()
        )
        if override is None:
            raise NotFoundError(self.entity_name, subscription_id)
        return override
