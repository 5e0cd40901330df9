"""
Database connection and session management.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from feedbot.config import get_config
from feedbot.logger import get_logger
from feedbot.models import Base
from feedbot.storage.dialects import get_dialect

if TYPE_CHECKING:
    from feedbot.config import DatabaseConfig

logger = get_logger(__name__)

# Global engine and session factory
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _create_engine(db_config: "DatabaseConfig") -> Engine:
    dialect = get_dialect(db_config.type)

    problems = dialect.validate_config(db_config)
    if problems:
        raise ValueError("Invalid database configuration: " + "; ".join(problems))

    engine = create_engine(dialect.build_url(db_config), **dialect.get_engine_kwargs(db_config))
    dialect.setup_engine_events(engine)
    return engine


def get_engine() -> Engine:
    """Get or create the global database engine."""
    global _engine

    if _engine is None:
        _engine = _create_engine(get_config().database)

    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the global session factory."""
    global _session_factory

    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine(),
        )

    return _session_factory


@contextmanager
def get_db() -> Generator[Session, None, None]:
    """Get a transactional database session.

    Commits on success and rolls back on any exception.

    Example:
        >>> with get_db() as session:
        ...     feeds = FeedRepository(session).list_feeds()
    """
    session = get_session_factory()()

    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(drop_all: bool = False) -> None:
    """Create all tables on the configured database.

    Args:
        drop_all: If True, drop all tables first (DANGEROUS!)
    """
    engine = get_engine()

    if drop_all:
        logger.warning("Dropping all tables - data will be lost!")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema is up to date")


def close_db() -> None:
    """Close the database connection and dispose of the engine."""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _session_factory = None


class DatabaseManager:
    """Owns one engine and hands out transactional sessions.

    The dispatcher and the scheduler take a DatabaseManager so that every
    feed worker opens its own session.
    """

    def __init__(self, db_path: Optional[str] = None, db_config: Optional["DatabaseConfig"] = None):
        """Initialize database manager.

        Args:
            db_path: Optional SQLite path (":memory:" for an in-memory database)
            db_config: Optional custom database configuration

        If neither is provided, the global config is used.
        """
        self._custom_db_path = db_path
        self._custom_db_config = db_config
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def engine(self) -> Engine:
        """Get the database engine."""
        if self._engine is None:
            if self._custom_db_path:
                from feedbot.config import DatabaseConfig

                if self._custom_db_path != ":memory:":
                    Path(self._custom_db_path).parent.mkdir(parents=True, exist_ok=True)
                self._engine = _create_engine(DatabaseConfig(type="sqlite", path=self._custom_db_path))
            elif self._custom_db_config:
                self._engine = _create_engine(self._custom_db_config)
            else:
                self._engine = get_engine()

        return self._engine

    def init_db(self, drop_all: bool = False) -> None:
        """Initialize database tables.

        Args:
            drop_all: If True, drop existing tables first
        """
        if drop_all:
            Base.metadata.drop_all(bind=self.engine)

        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """Get a transactional database session.

        Yields:
            SQLAlchemy Session instance
        """
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                autocommit=False,
                autoflush=False,
                bind=self.engine,
            )
        session = self._session_factory()

        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        self._session_factory = None

    def __enter__(self) -> "DatabaseManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
