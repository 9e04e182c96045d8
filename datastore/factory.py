from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from datastore.base import ReadingStore
from datastore.readings_table import ReadingTable
from datastore.sql_store import SqlReadingStore
from settings import get_settings


@lru_cache
def build_default_store(
    database_url: Optional[str] = None,
    path: Optional[str] = None,
) -> ReadingStore:
    settings = get_settings()
    url = settings.database_url if database_url is None else database_url
    if url:
        return SqlReadingStore.from_url(url, max_limit=settings.history_limit)

    table_path = settings.readings_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return ReadingTable(
        name="tds_readings",
        persistence_path=persistence,
        max_limit=settings.history_limit,
    )
