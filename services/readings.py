"""Read-only queries over persisted readings."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from datastore.base import DEFAULT_HISTORY_LIMIT, ReadingStore
from datastore.factory import build_default_store
from models.records import Reading
from settings import get_settings


class ReadingQueryService:
    """Serves the latest reading and a bounded history; never touches the broker."""

    def __init__(self, store: ReadingStore, history_limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.store = store
        self.history_limit = history_limit

    def latest(self) -> Reading:
        reading = self.store.latest()
        if reading is None:
            raise KeyError("No readings have been recorded yet.")
        return reading

    def history(self, limit: Optional[int] = None) -> List[Reading]:
        """Newest first, capped at ``history_limit``."""
        requested = self.history_limit if limit is None else min(limit, self.history_limit)
        return self.store.recent(requested)


@lru_cache
def build_default_query_service() -> ReadingQueryService:
    settings = get_settings()
    return ReadingQueryService(store=build_default_store(), history_limit=settings.history_limit)
