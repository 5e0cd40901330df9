"""Data models for feedbot."""

from feedbot.models.base import Base, utc_now
from feedbot.models.feed import ZERO_WATERMARK, FeedModel, FeedResponse
from feedbot.models.guild import GuildConfigModel, GuildConfigResponse
from feedbot.models.subscription import (
    OverrideModel,
    OverrideResponse,
    SubscriptionModel,
    SubscriptionResponse,
    SubscriptionTarget,
)
from feedbot.models.tristate import TriState, TriStateType

__all__ = [
    "Base",
    "utc_now",
    "ZERO_WATERMARK",
    "FeedModel",
    "FeedResponse",
    "GuildConfigModel",
    "GuildConfigResponse",
    "SubscriptionModel",
    "SubscriptionResponse",
    "SubscriptionTarget",
    "OverrideModel",
    "OverrideResponse",
    "TriState",
    "TriStateType",
]
