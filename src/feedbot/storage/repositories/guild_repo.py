"""
Guild config repository: per-guild defaults and guild teardown.
"""

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from feedbot.exceptions import AlreadyExistsError
from feedbot.models import GuildConfigModel, OverrideModel, SubscriptionModel, utc_now
from feedbot.storage.repositories.base import BaseRepository
from feedbot.storage.repositories.feed_repo import FeedRepository


class GuildConfigRepository(BaseRepository[GuildConfigModel]):
    """Repository for GuildConfig rows."""

    entity_name = "guild"

    def __init__(self, session: Session) -> None:
        super().__init__(session, GuildConfigModel)

    def create(
        self,
        guild_id: str,
        contact: str,
        default_embeds: bool = False,
        default_webhooks: bool = False,
    ) -> GuildConfigModel:
        """Create the config for a newly joined guild.

        Raises:
            AlreadyExistsError: If the guild is already known; `existing`
                holds its current config
        """
        stmt = self.dialect.insert_ignore(GuildConfigModel.__table__, ["id"]).values(
            id=guild_id,
            contact=contact,
            default_embeds=default_embeds,
            default_webhooks=default_webhooks,
            created_at=utc_now(),
        )
        result = self.session.execute(stmt)

        guild = self.require(guild_id)
        if result.rowcount == 0:
            raise AlreadyExistsError(self.entity_name, guild)
        return guild

    def get(self, guild_id: str) -> GuildConfigModel:
        """Get a guild config.

        Raises:
            NotFoundError: If the guild is unknown
        """
        return self.require(guild_id)

    def set_contact(self, guild_id: str, contact: str) -> None:
        self._update_where(GuildConfigModel.id, guild_id, contact=contact)

    def set_default_embeds(self, guild_id: str, enabled: bool) -> None:
        self._update_where(GuildConfigModel.id, guild_id, default_embeds=enabled)

    def set_default_webhooks(self, guild_id: str, enabled: bool) -> None:
        self._update_where(GuildConfigModel.id, guild_id, default_webhooks=enabled)

    def destroy(self, guild_id: str) -> int:
        """Remove a guild's config, subscriptions and overrides.

        Feeds left without any subscription are deleted as well. All
        statements run in the caller's transaction, so a failure leaves
        the guild untouched once the session rolls back.

        Args:
            guild_id: Guild to remove

        Returns:
            Number of orphaned feeds deleted

        Raises:
            NotFoundError: If the guild is unknown
        """
        self.require(guild_id)

        feed_ids = [
            feed_id
            for (feed_id,) in self.session.query(SubscriptionModel.feed_id)
            .filter(SubscriptionModel.guild_id == guild_id)
            .distinct()
        ]
        guild_subscriptions = select(SubscriptionModel.id).where(
            SubscriptionModel.guild_id == guild_id
        )

        self.session.flush()
        self.session.execute(
            delete(OverrideModel)
            .where(OverrideModel.subscription_id.in_(guild_subscriptions))
            .execution_options(synchronize_session=False)
        )
        self.session.execute(
            delete(SubscriptionModel)
            .where(SubscriptionModel.guild_id == guild_id)
            .execution_options(synchronize_session=False)
        )
        self.session.execute(
            delete(GuildConfigModel)
            .where(GuildConfigModel.id == guild_id)
            .execution_options(synchronize_session=False)
        )
        self.session.expire_all()

        return FeedRepository(self.session).prune_orphans(feed_ids)
