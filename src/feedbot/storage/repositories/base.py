"""
Generic repository base class.
"""

from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import asc, desc, func, update
from sqlalchemy.orm import Session

from feedbot.exceptions import NotFoundError
from feedbot.models import Base
from feedbot.storage.dialects import BaseDialect, get_dialect

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Common lookups and point updates shared by all repositories.

    Repositories never commit: they flush inside the caller's session, so
    one `DatabaseManager.session()` block is one transaction.
    """

    entity_name = "row"

    def __init__(self, session: Session, model: type[ModelType]) -> None:
        """Initialize repository.

        Args:
            session: SQLAlchemy Session instance
            model: ORM model class managed by this repository
        """
        self.session = session
        self.model = model

    @property
    def dialect(self) -> BaseDialect:
        """Dialect of the database this session is bound to."""
        return get_dialect(self.session.get_bind().dialect.name)

    def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get a row by primary key, or None."""
        return self.session.get(self.model, id)

    def require(self, id: Any) -> ModelType:
        """Get a row by primary key.

        Raises:
            NotFoundError: If no such row exists
        """
        obj = self.get_by_id(id)
        if obj is None:
            raise NotFoundError(self.entity_name, id)
        return obj

    def list(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
        order_by: str = "id",
        order_desc: bool = False,
        **filters: Any,
    ) -> list[ModelType]:
        """List rows with equality filters."""
        query = self.session.query(self.model)
        for field, value in filters.items():
            query = query.filter(getattr(self.model, field) == value)

        column = getattr(self.model, order_by)
        query = query.order_by(desc(column) if order_desc else asc(column))

        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self, **filters: Any) -> int:
        """Count rows with equality filters."""
        query = self.session.query(func.count()).select_from(self.model)
        for field, value in filters.items():
            query = query.filter(getattr(self.model, field) == value)
        return query.scalar() or 0

    def _update_where(self, column, key: Any, **values: Any) -> None:
        """Update the row(s) where `column == key`.

        Raises:
            NotFoundError: If no row matched
        """
        result = self.session.execute(
            update(column.class_).where(column == key).values(**values)
        )
        if result.rowcount == 0:
            raise NotFoundError(self.entity_name, key)
        self.session.flush()
