"""Contract shared by the reading store backends."""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from models.records import Reading

DEFAULT_HISTORY_LIMIT = 60


class StoreError(RuntimeError):
    """A store operation failed; the caller decides whether to retry."""


class StoreUnavailableError(StoreError):
    """The backing storage could not be reached or written."""


class DuplicateReadingError(StoreError):
    """A reading with the same identifier already exists."""

    def __init__(self, reading_id: int) -> None:
        super().__init__(f"Reading with id {reading_id} already exists.")
        self.reading_id = reading_id


@runtime_checkable
class ReadingStore(Protocol):
    max_limit: int

    def insert(self, reading: Reading) -> None: ...

    def latest(self) -> Optional[Reading]: ...

    def recent(self, limit: int) -> List[Reading]: ...


def effective_limit(limit: int, max_limit: int) -> int:
    if limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit}.")
    return min(limit, max_limit)
