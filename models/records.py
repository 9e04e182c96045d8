"""Domain models shared across services."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict

# Identifiers fit a signed 32-bit INTEGER column.
_ID_MASK = 0x7FFFFFFF


@dataclass(frozen=True, slots=True)
class Reading:
    """A single TDS measurement as persisted by the bridge."""

    id: int
    value_ppm: float
    observed_at: int

    def to_row(self) -> Dict[str, Any]:
        """Column layout shared by the stores and the HTTP projection."""
        return {"id": self.id, "tds_ppm": self.value_ppm, "timestamp": self.observed_at}

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Reading":
        return cls(
            id=int(row["id"]),
            value_ppm=float(row["tds_ppm"]),
            observed_at=int(row["timestamp"]),
        )


def new_reading_id() -> int:
    """Random positive identifier; uniqueness is enforced by the store."""
    return (uuid.uuid4().int & _ID_MASK) or 1
