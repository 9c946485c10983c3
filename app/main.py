from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.fleet import build_default_fleet_analyzer


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    analyzer = build_default_fleet_analyzer()
    try:
        yield
    finally:
        analyzer.shutdown()
        build_default_fleet_analyzer.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Tank Consumption Analytics",
        description="Refill-aware consumption rates, trends and days-remaining forecasts for monitored fuel tanks.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
