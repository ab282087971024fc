from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.tiered_cache import build_default_cache


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    cache = build_default_cache()
    try:
        yield
    finally:
        await cache.aclose()
        build_default_cache.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Climate Series",
        description="Date-range queries over tiered cached climate series.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
