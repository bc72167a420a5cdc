"""logstream server: FastAPI entry point."""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from logstream.config import settings
from logstream.logging_config import setup_logging
from logstream.routers import logs, ws
from logstream.services.subscriptions import SubscriptionManager
from logstream.telemetry import instrument_fastapi

setup_logging(
    is_dev=settings.is_dev,
    level="DEBUG" if settings.is_dev else "INFO",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the subscription manager for the lifetime of the server."""
    app.state.subscriptions = SubscriptionManager()
    logger.info("WebSocket server is running on port %d", settings.app_port)
    try:
        yield
    finally:
        await app.state.subscriptions.shutdown()


app = FastAPI(
    title="logstream",
    description="Streams classified container logs to viewers over WebSocket.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

instrument_fastapi(app)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """Log every HTTP request with method, path, status, and duration."""
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    start = time.perf_counter()

    response = await call_next(request)

    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    logger.info(
        "%s %s -> %d (%.1fms)",
        request.method, request.url.path, response.status_code, duration_ms,
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": str(request.url.path),
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(ws.router)
app.include_router(logs.router)


@app.get("/api/health")
async def health(request: Request) -> dict:
    return {
        "status": "ok",
        "subscriptions": request.app.state.subscriptions.stats,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "logstream.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_dev,
    )
