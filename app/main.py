from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router
from app.web import router as web_router
from logging_config import configure_logging
from services.ingestion import build_default_ingestor
from settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    ingestor = build_default_ingestor() if get_settings().ingest_enabled else None
    # Health reads this instance; the factory cache is cleared on shutdown.
    app.state.ingestor = ingestor
    if ingestor is not None:
        ingestor.start()
    try:
        yield
    finally:
        if ingestor is not None:
            ingestor.shutdown()
            build_default_ingestor.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(
        title="TDS Telemetry Bridge",
        description="Persists TDS readings from an MQTT topic and serves the recent history.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.include_router(router)
    app.include_router(web_router)
    return app

app = create_app()
