"""SQLite dialect implementation."""

from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import Engine, Table, event
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql.dml import Insert

from feedbot.storage.dialects.base import BaseDialect

if TYPE_CHECKING:
    from feedbot.config import DatabaseConfig

MEMORY_PATHS = (":memory:", "sqlite://", "sqlite:///:memory:")


class SQLiteDialect(BaseDialect):
    """SQLite database dialect.

    The default backend. Foreign keys are enforced per connection so that
    subscription overrides cascade and referenced feeds cannot be deleted.
    """

    @property
    def name(self) -> str:
        return "sqlite"

    def build_url(self, config: "DatabaseConfig") -> str:
        """Build SQLite database URL.

        - path: "data/feedbot.db" -> "sqlite:///data/feedbot.db"
        - path: "sqlite:///data/feedbot.db" -> unchanged
        - path: ":memory:" -> "sqlite://"
        """
        db_path = config.path

        if db_path == ":memory:":
            return "sqlite://"
        if db_path.startswith("sqlite://"):
            return db_path

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_engine_kwargs(self, config: "DatabaseConfig") -> dict:
        """Get SQLite-specific engine kwargs.

        In-memory databases exist per connection, so they share a single
        connection through StaticPool. File databases use QueuePool so the
        feed workers each get their own connection.
        """
        kwargs = {
            "echo": config.echo,
            "connect_args": {
                "check_same_thread": False,
                "timeout": 30,  # seconds to wait on a locked database
            },
        }
        if config.path in MEMORY_PATHS:
            kwargs["poolclass"] = StaticPool
        else:
            kwargs["poolclass"] = QueuePool
            kwargs["pool_size"] = config.pool_size
            kwargs["max_overflow"] = config.max_overflow
        return kwargs

    def insert_ignore(self, table: Table, index_elements: list[str]) -> Insert:
        return sqlite_insert(table).on_conflict_do_nothing(index_elements=index_elements)

    def setup_engine_events(self, engine: Engine) -> None:
        """Enable foreign keys and WAL mode on every new connection."""

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    def validate_config(self, config: "DatabaseConfig") -> list[str]:
        errors = []
        if config.path not in MEMORY_PATHS and not config.path.startswith("sqlite://"):
            db_path = Path(config.path)
            if db_path.exists() and not db_path.is_file():
                errors.append(f"Database path exists but is not a file: {config.path}")
        return errors
