"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.schemas import HealthResponse, IngestionStatus, ReadingResponse
from datastore.base import StoreError
from services.ingestion import IngestionService
from services.readings import ReadingQueryService, build_default_query_service

router = APIRouter()


def get_query_service() -> ReadingQueryService:
    return build_default_query_service()


def get_ingestor(request: Request) -> Optional[IngestionService]:
    """The ingestor started by the app lifespan, if any."""
    return getattr(request.app.state, "ingestor", None)


@router.get(
    "/last_message",
    response_model=ReadingResponse,
    summary="Fetch the most recently ingested reading.",
)
def fetch_last_message(
    queries: ReadingQueryService = Depends(get_query_service),
) -> ReadingResponse:
    try:
        reading = queries.latest()
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=exc.args[0],
        ) from exc
    except StoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch message: {exc}",
        ) from exc
    return ReadingResponse.from_reading(reading)


@router.get(
    "/tds_history",
    response_model=List[ReadingResponse],
    summary="Fetch the most recent readings, newest first.",
)
def fetch_tds_history(
    limit: Optional[int] = Query(
        default=None,
        ge=1,
        description="Maximum number of readings; capped by the configured history limit.",
    ),
    queries: ReadingQueryService = Depends(get_query_service),
) -> List[ReadingResponse]:
    try:
        readings = queries.history(limit)
    except StoreError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch history: {exc}",
        ) from exc
    return [ReadingResponse.from_reading(reading) for reading in readings]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint with ingestion counters.",
    status_code=status.HTTP_200_OK,
)
def healthcheck(
    ingestor: Optional[IngestionService] = Depends(get_ingestor),
) -> HealthResponse:
    if ingestor is None:
        return HealthResponse()
    return HealthResponse(ingestion=IngestionStatus(**ingestor.stats.as_dict()))


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
