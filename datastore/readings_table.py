from __future__ import annotations

import heapq
import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import List, Optional, Set

from datastore.base import (
    DEFAULT_HISTORY_LIMIT,
    DuplicateReadingError,
    StoreUnavailableError,
    effective_limit,
)
from models.records import Reading

logger = logging.getLogger(__name__)


class ReadingTable:
    """Append-only reading table kept in memory and journaled to a JSON-lines file.

    Each insert appends exactly one line, so the write cost does not depend on
    how many readings the table already holds.
    """

    def __init__(
        self,
        name: str,
        persistence_path: Optional[Path] = None,
        max_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self.max_limit = max_limit
        self._rows: List[Reading] = []
        self._ids: Set[int] = set()
        self._lock = Lock()
        self._write_lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def insert(self, reading: Reading) -> None:
        # Single writer at a time; readers only wait for the in-memory append.
        with self._write_lock:
            with self._lock:
                if reading.id in self._ids:
                    raise DuplicateReadingError(reading.id)
            try:
                self._append(reading)
            except OSError as exc:
                raise StoreUnavailableError(
                    f"Failed to write table {self.name!r}: {exc}"
                ) from exc
            with self._lock:
                self._rows.append(reading)
                self._ids.add(reading.id)

    def latest(self) -> Optional[Reading]:
        with self._lock:
            return self._rows[-1] if self._rows else None

    def recent(self, limit: int) -> List[Reading]:
        """Newest readings first; equal timestamps resolve to the later insert."""

        count = effective_limit(limit, self.max_limit)
        with self._lock:
            rows = self._rows
            positions = heapq.nlargest(
                count,
                range(len(rows)),
                key=lambda index: (rows[index].observed_at, index),
            )
            return [rows[index] for index in positions]

    def __len__(self) -> int:
        with self._lock:
            return len(self._rows)

    def _append(self, reading: Reading) -> None:
        if not self.persistence_path:
            return
        line = json.dumps(reading.to_row()) + "\n"
        with self.persistence_path.open("a", encoding="utf-8") as handle:
            offset = handle.tell()
            try:
                handle.write(line)
                handle.flush()
                os.fsync(handle.fileno())
            except OSError:
                # Drop a partially written line so the file stays parseable.
                handle.truncate(offset)
                raise

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_bytes()
        except OSError as exc:
            logger.warning(
                "Ignoring unreadable reading table file",
                extra={"reason": str(exc)},
            )
            return

        complete, _sep, tail = raw.rpartition(b"\n")
        if tail:
            logger.warning(
                "Discarding partial trailing record",
                extra={"reason": repr(tail[:80])},
            )
            os.truncate(self.persistence_path, len(raw) - len(tail))

        for line in complete.decode("utf-8", errors="replace").splitlines():
            if not line.strip():
                continue
            try:
                reading = Reading.from_row(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed stored reading", extra={"reason": line[:80]})
                continue
            if reading.id in self._ids:
                continue
            self._rows.append(reading)
            self._ids.add(reading.id)
