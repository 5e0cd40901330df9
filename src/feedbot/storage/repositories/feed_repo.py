"""
Feed repository: feed identity and watermarks.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, exists, select
from sqlalchemy.orm import Session

from feedbot.exceptions import NotFoundError
from feedbot.models import ZERO_WATERMARK, FeedModel, SubscriptionModel, utc_now
from feedbot.storage.repositories.base import BaseRepository


class FeedRepository(BaseRepository[FeedModel]):
    """Repository for Feed rows."""

    entity_name = "feed"

    def __init__(self, session: Session) -> None:
        super().__init__(session, FeedModel)

    def get_by_uri(self, uri: str) -> Optional[FeedModel]:
        """Get a feed by URI."""
        return self.session.query(FeedModel).filter(FeedModel.uri == uri).first()

    def get_or_create(self, uri: str) -> FeedModel:
        """Return the feed for `uri`, inserting it with the zero watermark if new.

        The insert skips on a URI conflict, so concurrent calls for the same
        URI end up reading the single row that won.

        Args:
            uri: Feed URI

        Returns:
            FeedModel instance
        """
        stmt = self.dialect.insert_ignore(FeedModel.__table__, ["uri"]).values(
            uri=uri,
            watermark=ZERO_WATERMARK,
            created_at=utc_now(),
        )
        self.session.execute(stmt)

        feed = self.get_by_uri(uri)
        if feed is None:
            # Deleted between our insert and read
            raise NotFoundError(self.entity_name, uri)
        return feed

    def list_feeds(self) -> list[FeedModel]:
        """Get every known feed."""
        return self.session.query(FeedModel).order_by(FeedModel.id).all()

    def advance_watermark(self, feed_id: int, watermark: datetime) -> None:
        """Store a new watermark for a feed.

        Args:
            feed_id: Feed ID
            watermark: Publish time (naive UTC) of the newest handled item

        Raises:
            NotFoundError: If the feed no longer exists
        """
        self._update_where(FeedModel.id, feed_id, watermark=watermark)

    def prune_orphans(self, feed_ids: Optional[Iterable[int]] = None) -> int:
        """Delete feeds that no subscription references.

        Args:
            feed_ids: Restrict pruning to these feeds (all feeds if None)

        Returns:
            Number of feeds deleted
        """
        referenced = exists(
            select(SubscriptionModel.id).where(SubscriptionModel.feed_id == FeedModel.id)
        )
        stmt = delete(FeedModel).where(~referenced)
        if feed_ids is not None:
            feed_ids = list(feed_ids)
            if not feed_ids:
                return 0
            stmt = stmt.where(FeedModel.id.in_(feed_ids))

        self.session.flush()
        result = self.session.execute(stmt.execution_options(synchronize_session=False))
        self.session.expire_all()
        return result.rowcount
