from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from datastore.base import StoreError
from models.records import Reading
from services.readings import ReadingQueryService, build_default_query_service

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


def _format_timestamp(value: int) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


templates.env.filters["timestamp"] = _format_timestamp


def get_query_service() -> ReadingQueryService:
    return build_default_query_service()


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
def ui_index(
    request: Request,
    queries: ReadingQueryService = Depends(get_query_service),
) -> HTMLResponse:
    history: List[Reading] = []
    error: Optional[str] = None
    try:
        history = queries.history()
    except StoreError as exc:
        logger.error("Status page could not read the store", extra={"reason": str(exc)})
        error = "The reading store is currently unavailable."

    return templates.TemplateResponse(
        request,
        "ui/index.html",
        {
            "latest": history[0] if history else None,
            "history": history,
            "error": error,
            "refresh_seconds": 5,
        },
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR if error else status.HTTP_200_OK,
    )
