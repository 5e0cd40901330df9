"""
Guild-wide configuration model.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feedbot.models.base import Base, utc_now

if TYPE_CHECKING:
    from feedbot.models.subscription import SubscriptionModel


class GuildConfigModel(Base):
    """SQLAlchemy ORM model for a guild's default delivery policy."""

    __tablename__ = "guild_configs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Emergency contact, "u:<user id>" or "c:<channel id>"
    contact: Mapped[str] = mapped_column(String(128), nullable=False)

    default_embeds: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    default_webhooks: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    subscriptions: Mapped[list["SubscriptionModel"]] = relationship(
        "SubscriptionModel",
        back_populates="guild",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<GuildConfigModel(id='{self.id}', contact='{self.contact}')>"


class GuildConfigResponse(BaseModel):
    """Read-only snapshot of a guild config."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    contact: str
    default_embeds: bool
    default_webhooks: bool
