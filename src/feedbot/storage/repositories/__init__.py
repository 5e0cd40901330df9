"""Repository pattern implementations for data access."""

from feedbot.storage.repositories.feed_repo import FeedRepository
from feedbot.storage.repositories.guild_repo import GuildConfigRepository
from feedbot.storage.repositories.subscription_repo import SubscriptionRepository

__all__ = [
    "FeedRepository",
    "GuildConfigRepository",
    "SubscriptionRepository",
]
