"""
Subscription and override models.

A subscription binds one feed to one channel in one guild. Every
subscription owns exactly one override row holding its tri-state
exceptions to the guild default.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict
from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feedbot.models.base import Base, utc_now
from feedbot.models.tristate import TriState, TriStateType

if TYPE_CHECKING:
    from feedbot.models.feed import FeedModel
    from feedbot.models.guild import GuildConfigModel


class SubscriptionModel(Base):
    """SQLAlchemy ORM model for Subscription."""

    __tablename__ = "subscriptions"

    __table_args__ = (
        UniqueConstraint("channel_id", "feed_id", name="uq_subscriptions_channel_feed"),
        Index("ix_subscriptions_guild_id", "guild_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("guild_configs.id", ondelete="CASCADE"), nullable=False
    )
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    feed_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("feeds.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    feed: Mapped["FeedModel"] = relationship("FeedModel", back_populates="subscriptions")
    guild: Mapped["GuildConfigModel"] = relationship("GuildConfigModel", back_populates="subscriptions")
    override: Mapped["OverrideModel"] = relationship(
        "OverrideModel",
        back_populates="subscription",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<SubscriptionModel(id={self.id}, guild_id='{self.guild_id}', "
            f"channel_id='{self.channel_id}', feed_id={self.feed_id})>"
        )


class OverrideModel(Base):
    """SQLAlchemy ORM model for a subscription's policy override."""

    __tablename__ = "subscription_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    embeds: Mapped[TriState] = mapped_column(TriStateType, nullable=True, default=TriState.INHERIT)
    webhooks: Mapped[TriState] = mapped_column(TriStateType, nullable=True, default=TriState.INHERIT)

    subscription: Mapped["SubscriptionModel"] = relationship(
        "SubscriptionModel", back_populates="override"
    )

    def __repr__(self) -> str:
        return (
            f"<OverrideModel(subscription_id={self.subscription_id}, "
            f"embeds={self.embeds.value}, webhooks={self.webhooks.value})>"
        )


# Pydantic read models


class OverrideResponse(BaseModel):
    """Read-only snapshot of an override."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    embeds: TriState = TriState.INHERIT
    webhooks: TriState = TriState.INHERIT


class SubscriptionResponse(BaseModel):
    """Read-only snapshot of a subscription with its feed URI and override."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    guild_id: str
    channel_id: str
    feed_id: int
    feed_uri: str | None = None
    override: OverrideResponse = OverrideResponse()

    @classmethod
    def from_model(cls, sub: SubscriptionModel) -> "SubscriptionResponse":
        return cls(
            id=sub.id,
            guild_id=sub.guild_id,
            channel_id=sub.channel_id,
            feed_id=sub.feed_id,
            feed_uri=sub.feed.uri if sub.feed is not None else None,
            override=OverrideResponse.model_validate(sub.override)
            if sub.override is not None
            else OverrideResponse(),
        )


class SubscriptionTarget(BaseModel):
    """One delivery target of a feed: subscription, guild defaults and override."""

    model_config = ConfigDict(frozen=True)

    subscription_id: int
    guild_id: str
    channel_id: str
    feed_id: int
    feed_uri: str
    default_embeds: bool
    default_webhooks: bool
    override_embeds: TriState
    override_webhooks: TriState
