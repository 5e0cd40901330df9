"""
Feed data model for polled RSS/Atom sources.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feedbot.models.base import Base, utc_now

if TYPE_CHECKING:
    from feedbot.models.subscription import SubscriptionModel

# Watermark of a feed that has never been polled. Every real item is newer.
ZERO_WATERMARK = datetime(1970, 1, 1)


class FeedModel(Base):
    """SQLAlchemy ORM model for Feed."""

    __tablename__ = "feeds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uri: Mapped[str] = mapped_column(String(2048), unique=True, nullable=False, index=True)

    # Publish time (naive UTC) of the newest item already handled
    watermark: Mapped[datetime] = mapped_column(DateTime, default=ZERO_WATERMARK, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    # Subscriptions restrict feed deletion (no ORM cascade)
    subscriptions: Mapped[list["SubscriptionModel"]] = relationship(
        "SubscriptionModel",
        back_populates="feed",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<FeedModel(id={self.id}, uri='{self.uri}', watermark={self.watermark})>"


class FeedResponse(BaseModel):
    """Read-only snapshot of a feed."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    uri: str = Field(..., max_length=2048)
    watermark: datetime
