"""Recent-log endpoint backed by the in-memory record window."""

from __future__ import annotations

from fastapi import APIRouter, Request

from logstream.models.log import LogRecord

router = APIRouter(tags=["logs"])


@router.get("/api/logs", response_model=list[LogRecord])
async def list_logs(request: Request, limit: int = 100, service: str | None = None) -> list[LogRecord]:
    """Return the most recent records delivered to viewers, oldest first."""
    return request.app.state.subscriptions.records.get_recent(limit, service)
