"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from models.records import Reading


class ReadingResponse(BaseModel):
    """A persisted TDS reading as served to clients."""

    id: int = Field(..., description="Identifier assigned at ingestion.")
    tds_ppm: float = Field(..., description="Total dissolved solids in parts per million.")
    timestamp: int = Field(..., description="Ingestion time in seconds since the epoch.")

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingResponse":
        return cls(id=reading.id, tds_ppm=reading.value_ppm, timestamp=reading.observed_at)


class IngestionStatus(BaseModel):
    """Counters reported by the background ingestion loop."""

    state: str
    topic: str
    messages_received: int = Field(..., ge=0)
    readings_persisted: int = Field(..., ge=0)
    messages_dropped: int = Field(..., ge=0)
    store_failures: int = Field(..., ge=0)
    last_message_at: Optional[float] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    ingestion: Optional[IngestionStatus] = None
