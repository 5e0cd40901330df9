"""
Exception types shared by the stores, the diff engine and the dispatcher.
"""

from typing import Any, Optional


class FeedbotError(Exception):
    """Base class for all feedbot errors."""


class NotFoundError(FeedbotError):
    """A feed, subscription or guild config does not exist."""

    def __init__(self, entity: str, key: Any):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class AlreadyExistsError(FeedbotError):
    """The row being created is already present.

    Not a failure for the caller's control flow: `existing` carries the row
    that is already stored so the caller can report it.
    """

    def __init__(self, entity: str, existing: Any):
        self.entity = entity
        self.existing = existing
        super().__init__(f"{entity} already exists")


class MissingTimestampError(FeedbotError):
    """A fetched feed contains an item without a publish timestamp."""

    def __init__(self, uri: Optional[str] = None, index: Optional[int] = None):
        self.uri = uri
        self.index = index
        where = f" at {uri}" if uri else ""
        super().__init__(f"the feed{where} contained an entry with no timestamp (item {index})")


class FetchError(FeedbotError):
    """Fetching or parsing a feed failed."""

    def __init__(self, uri: str, reason: str, http_status: Optional[int] = None):
        self.uri = uri
        self.reason = reason
        self.http_status = http_status
        super().__init__(f"failed to fetch {uri}: {reason}")


class StoreUnavailableError(FeedbotError):
    """The persistence layer could not be reached; the cycle is aborted."""
