"""
FastAPI application entry point for the photo service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.config import get_settings
from backend.routes import router
from backend.sweeper import start_sweeper


@asynccontextmanager
async def lifespan(app: FastAPI):
    interval = get_settings().photo_session_sweep_interval_seconds
    if interval <= 0:
        yield
        return
    thread, stop_event = start_sweeper(interval)
    try:
        yield
    finally:
        stop_event.set()
        thread.join(timeout=5)


def create_app() -> FastAPI:
    logging.basicConfig(level=logging.INFO)
    settings = get_settings()
    app = FastAPI(
        title="Famileezy Photo Service", version="0.1.0", lifespan=lifespan
    )
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
