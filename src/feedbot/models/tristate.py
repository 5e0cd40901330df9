"""
Tri-state override values.

An override is either unset (inherit the guild default) or forced on/off.
The database stores it as a nullable boolean; Python code only ever sees
the enum.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import Boolean
from sqlalchemy.types import TypeDecorator


class TriState(str, Enum):
    """Override value for a single delivery setting."""

    INHERIT = "inherit"
    ON = "on"
    OFF = "off"

    def resolve(self, default: bool) -> bool:
        """Return the effective value given the inherited default."""
        if self is TriState.INHERIT:
            return default
        return self is TriState.ON

    def to_bool(self) -> Optional[bool]:
        if self is TriState.INHERIT:
            return None
        return self is TriState.ON

    @classmethod
    def from_bool(cls, value: Optional[bool]) -> "TriState":
        if value is None:
            return cls.INHERIT
        return cls.ON if value else cls.OFF

    @classmethod
    def parse(cls, text: str) -> "TriState":
        """Parse user-facing text such as "on", "off" or "unset".

        Raises:
            ValueError: If the text is not a recognised value
        """
        value = text.strip().lower()
        if value in ("on", "true", "yes", "enable", "enabled"):
            return cls.ON
        if value in ("off", "false", "no", "disable", "disabled"):
            return cls.OFF
        if value in ("inherit", "unset", "default", "reset"):
            return cls.INHERIT
        raise ValueError(f"Invalid override value: {text!r}")


class TriStateType(TypeDecorator):
    """Stores a TriState as a nullable boolean (NULL = inherit)."""

    impl = Boolean
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        return TriState(value).to_bool()

    def process_result_value(self, value, dialect):
        return TriState.from_bool(value)
