"""Tests for database plumbing: DatabaseManager and dialects."""

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.pool import StaticPool

from feedbot.config import DatabaseConfig
from feedbot.models import FeedModel, GuildConfigModel
from feedbot.storage.database import DatabaseManager
from feedbot.storage.dialects import (
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
    get_supported_dialects,
)


class TestDatabaseManager:
    """Tests for DatabaseManager."""

    def test_init_db_creates_tables(self, db_manager: DatabaseManager):
        tables = set(inspect(db_manager.engine).get_table_names())

        assert {"feeds", "guild_configs", "subscriptions", "subscription_overrides"} <= tables

    def test_foreign_keys_enforced(self, db_manager: DatabaseManager):
        with db_manager.session() as session:
            assert session.execute(text("PRAGMA foreign_keys")).scalar() == 1

    def test_session_commits(self, db_manager: DatabaseManager):
        with db_manager.session() as session:
            session.add(GuildConfigModel(id="1", contact="u:2"))

        with db_manager.session() as session:
            assert session.get(GuildConfigModel, "1") is not None

    def test_session_rolls_back_on_error(self, db_manager: DatabaseManager):
        with pytest.raises(RuntimeError):
            with db_manager.session() as session:
                session.add(GuildConfigModel(id="1", contact="u:2"))
                session.flush()
                raise RuntimeError("abort")

        with db_manager.session() as session:
            assert session.get(GuildConfigModel, "1") is None

    def test_drop_all(self, db_manager: DatabaseManager):
        with db_manager.session() as session:
            session.add(FeedModel(uri="https://example.com/rss"))

        db_manager.init_db(drop_all=True)

        with db_manager.session() as session:
            assert session.query(FeedModel).count() == 0

    def test_memory_database_shares_one_connection(self):
        with DatabaseManager(":memory:") as manager:
            manager.init_db()
            assert isinstance(manager.engine.pool, StaticPool)

            with manager.session() as session:
                session.add(GuildConfigModel(id="1", contact="u:2"))
            with manager.session() as session:
                assert session.get(GuildConfigModel, "1") is not None


class TestDialects:
    """Tests for the dialect registry."""

    def test_registry(self):
        assert isinstance(get_dialect("sqlite"), SQLiteDialect)
        assert isinstance(get_dialect("Postgres"), PostgreSQLDialect)
        assert "postgresql" in get_supported_dialects()

    def test_unknown_dialect(self):
        with pytest.raises(ValueError):
            get_dialect("mysql")

    def test_sqlite_urls(self, tmp_path):
        dialect = SQLiteDialect()

        assert dialect.build_url(DatabaseConfig(path=":memory:")) == "sqlite://"
        assert dialect.build_url(DatabaseConfig(path="sqlite:///x.db")) == "sqlite:///x.db"
        path = tmp_path / "sub" / "feedbot.db"
        assert dialect.build_url(DatabaseConfig(path=str(path))) == f"sqlite:///{path}"
        assert path.parent.exists()

    def test_postgresql_url(self):
        config = DatabaseConfig(
            type="postgresql",
            host="db",
            port=6432,
            database="feedbot",
            user="bot",
            password="pw",
            ssl_mode="require",
        )

        assert PostgreSQLDialect().build_url(config) == "postgresql://bot:pw@db:6432/feedbot?sslmode=require"

    def test_postgresql_requires_database_and_user(self):
        problems = PostgreSQLDialect().validate_config(DatabaseConfig(type="postgresql"))

        assert len(problems) == 2

    def test_insert_ignore_compiles_on_conflict(self):
        from sqlalchemy.dialects import postgresql, sqlite

        table = FeedModel.__table__
        for dialect, compiler in ((SQLiteDialect(), sqlite.dialect()), (PostgreSQLDialect(), postgresql.dialect())):
            stmt = dialect.insert_ignore(table, ["uri"]).values(uri="x")
            sql = str(stmt.compile(dialect=compiler))
            assert "ON CONFLICT (uri) DO NOTHING" in sql
