"""Database dialect registry.

Lets feedbot run on SQLite (default) or PostgreSQL.
"""

from feedbot.storage.dialects.base import BaseDialect
from feedbot.storage.dialects.postgresql import PostgreSQLDialect
from feedbot.storage.dialects.sqlite import SQLiteDialect

_DIALECT_REGISTRY: dict[str, type[BaseDialect]] = {
    "sqlite": SQLiteDialect,
    "postgresql": PostgreSQLDialect,
    "postgres": PostgreSQLDialect,  # Alias
}


def get_dialect(name: str) -> BaseDialect:
    """Get a dialect instance by name.

    Args:
        name: Dialect name (sqlite, postgresql). "postgres" is an alias.

    Returns:
        Dialect instance

    Raises:
        ValueError: If dialect name is not supported
    """
    name_lower = name.lower()
    if name_lower not in _DIALECT_REGISTRY:
        supported = ", ".join(sorted(_DIALECT_REGISTRY))
        raise ValueError(
            f"Unsupported database dialect: {name!r}. Supported dialects: {supported}"
        )
    return _DIALECT_REGISTRY[name_lower]()


def get_supported_dialects() -> list[str]:
    """Get list of supported dialect names."""
    return sorted(_DIALECT_REGISTRY)


__all__ = [
    "BaseDialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "get_supported_dialects",
]
