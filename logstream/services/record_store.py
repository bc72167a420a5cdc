"""In-memory window of the most recent log records delivered to viewers.

Nothing is persisted: the window is a bounded deque and older records fall
off the end. It backs the ``GET /api/logs`` endpoint so a freshly opened page
can show some context before its own subscription starts producing.
"""

from __future__ import annotations

from collections import deque

from logstream.config import settings
from logstream.models.log import LogRecord


class RecentRecords:
    """Bounded, append-only window of LogRecords."""

    def __init__(self, maxlen: int | None = None) -> None:
        self._entries: deque[LogRecord] = deque(
            maxlen=maxlen or settings.recent_window_size,
        )

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def maxlen(self) -> int | None:
        return self._entries.maxlen

    def append(self, record: LogRecord) -> None:
        self._entries.append(record)  # deque.append is thread-safe in CPython

    def get_recent(self, limit: int = 100, service: str | None = None) -> list[LogRecord]:
        """Return up to *limit* newest records, oldest first."""
        if limit <= 0:
            return []
        items = list(self._entries)
        if service is not None:
            items = [r for r in items if r.service == service]
        return items[-limit:]

    def clear(self) -> None:
        self._entries.clear()
