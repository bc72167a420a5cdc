"""Synthetic log generator used when a real source cannot be tailed.

Produces a plausible, continuously varying stream for a source id so the
viewer keeps moving instead of going silent. Each source kind has its own
message pool; unknown sources get a generic one.

Lifecycle:
    generator = SyntheticSourceGenerator()
    handle = generator.start("redis", emit)   # emit: async (LogRecord) -> None
    ...
    await generator.stop(handle)              # safe to call twice
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone

from logstream.config import settings
from logstream.models.log import LogLevel, LogRecord
from logstream.services.sources import resolve_source_kind

logger = logging.getLogger(__name__)

Emit = Callable[[LogRecord], Awaitable[None]]

MESSAGE_POOLS: dict[str, list[str]] = {
    "nginx": [
        "192.168.1.101 - - [GET /index.html HTTP/1.1] 200 2048",
        "192.168.1.102 - - [GET /assets/css/main.css HTTP/1.1] 200 1024",
        "192.168.1.103 - - [POST /api/login HTTP/1.1] 401 256",
        "192.168.1.104 - - [GET /images/logo.png HTTP/1.1] 200 5120",
        "SSL handshake successful from 192.168.1.105",
        "Worker process started, PID: 12345",
        "Reloading configuration...",
        "Configuration reload successful",
    ],
    "mongo": [
        "Connection accepted from 192.168.1.106:48484",
        "Successfully authenticated as admin",
        "Creating collection: users",
        "Index build: users._id_ using: { _id: 1 }",
        'Query executed: { find: "users", filter: { email: { $exists: true } } }',
        "Write operation: inserted 1 document into users",
        "Slow query detected: 242ms",
        "Storage engine init completed",
    ],
    "redis": [
        "1:M 02 Sep 2025 10:15:23.456 * Redis 7.0.4 Ready to accept connections",
        "1:M 02 Sep 2025 10:15:24.123 > Client connected from 192.168.1.107:50001",
        "1:M 02 Sep 2025 10:15:25.789 * Client authenticated as 'default'",
        '1:M 02 Sep 2025 10:15:26.456 > SET user:1000 "John Doe" EX 3600',
        "1:M 02 Sep 2025 10:15:27.123 > GET user:1000",
        '1:M 02 Sep 2025 10:15:28.789 > LPUSH notifications:1000 "New message"',
        "1:M 02 Sep 2025 10:15:29.456 * Background saving started by pid 12345",
        "1:M 02 Sep 2025 10:15:30.123 * Background saving completed successfully",
        '1:M 02 Sep 2025 10:15:31.789 > PUBLISH channel:updates "System update completed"',
        "1:M 02 Sep 2025 10:15:32.456 > INCR visitors:count",
        "1:M 02 Sep 2025 10:15:33.123 # Server load: CPU=10.2% MEM=256MB/1GB",
        '1:M 02 Sep 2025 10:15:34.789 > HMSET user:profile:1000 name "John" email "john@example.com"',
        "1:M 02 Sep 2025 10:15:35.456 > EXPIRE session:token:12345 1800",
        "1:M 02 Sep 2025 10:15:36.123 > DEL expired:keys",
    ],
}

GENERIC_MESSAGES = [
    "Process started with PID 12345",
    "Configuration loaded from /etc/config.json",
    "Client connected from 192.168.1.100",
    "Operation completed successfully in 45ms",
    "Background task #4 running (10/100 items processed)",
    "Resource acquired: database connection #8",
    "Task #1234 completed with status: SUCCESS",
    "System status: all services operational",
]

# Severity-specific pools that replace the base message outright
SEVERITY_POOLS: dict[str, dict[LogLevel, list[str]]] = {
    "redis": {
        LogLevel.ERROR: [
            "1:M 02 Sep 2025 10:16:01.123 # ERROR Connection refused: max number of clients reached",
            "1:M 02 Sep 2025 10:16:02.456 # ERROR Out of memory allocating 16MB buffer",
            "1:M 02 Sep 2025 10:16:03.789 # ERROR Failed to open .rdb file for saving",
            "1:M 02 Sep 2025 10:16:04.123 # ERROR Client closed connection unexpectedly",
            "1:M 02 Sep 2025 10:16:05.456 # ERROR Command rejected due to disk space limits",
        ],
        LogLevel.WARN: [
            "1:M 02 Sep 2025 10:16:06.123 # WARNING High memory usage detected: 80% used",
            "1:M 02 Sep 2025 10:16:07.456 # WARNING Slow command executed: KEYS * (15ms)",
            "1:M 02 Sep 2025 10:16:08.789 # WARNING Client using deprecated command: SPOP",
            "1:M 02 Sep 2025 10:16:09.123 # WARNING Approaching maximum number of clients",
            "1:M 02 Sep 2025 10:16:10.456 # WARNING Background save taking longer than usual",
        ],
    },
}

# Reasons for the generic "LEVEL: reason - base message" composition
GENERIC_REASONS: dict[LogLevel, list[str]] = {
    LogLevel.ERROR: [
        "Connection refused",
        "Operation timeout",
        "Out of memory",
        "File not found",
        "Permission denied",
    ],
    LogLevel.WARN: [
        "High resource usage",
        "Approaching limit",
        "Slow operation detected",
        "Retry attempt",
        "Deprecated feature used",
    ],
}

LEVELS = [LogLevel.INFO, LogLevel.DEBUG, LogLevel.WARN, LogLevel.ERROR]


class SyntheticHandle:
    """Owns the timer task of one synthetic stream."""

    def __init__(self, source_id: str, task: asyncio.Task[None]) -> None:
        self.source_id = source_id
        self.task = task

    @property
    def running(self) -> bool:
        return not self.task.done()


class SyntheticSourceGenerator:
    """Emit fake-but-plausible LogRecords at randomized intervals.

    Args:
        min_interval_ms: Lower bound of the delay between records.
        max_interval_ms: Upper bound of the delay between records.
        aliases: source id -> known kind, used to pick message pools.
        rng: Random source; injectable for deterministic tests.
    """

    def __init__(
        self,
        *,
        min_interval_ms: int | None = None,
        max_interval_ms: int | None = None,
        aliases: Mapping[str, str] | None = None,
        rng: random.Random | None = None,
        stop_timeout: float | None = None,
    ) -> None:
        self.min_interval_ms = (
            settings.synthetic_min_interval_ms if min_interval_ms is None else min_interval_ms
        )
        self.max_interval_ms = (
            settings.synthetic_max_interval_ms if max_interval_ms is None else max_interval_ms
        )
        if self.min_interval_ms > self.max_interval_ms:
            raise ValueError("min_interval_ms must not exceed max_interval_ms")
        self.aliases = settings.source_alias_map if aliases is None else dict(aliases)
        self.stop_timeout = (
            settings.teardown_timeout_seconds if stop_timeout is None else stop_timeout
        )
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        """Seconds to wait before the next record, re-drawn every tick."""
        return self._rng.uniform(self.min_interval_ms, self.max_interval_ms) / 1000.0

    def generate(self, source_id: str) -> LogRecord:
        """Build one synthetic record for *source_id*."""
        kind = resolve_source_kind(source_id, self.aliases)
        level = self._rng.choice(LEVELS)
        message = self._rng.choice(MESSAGE_POOLS.get(kind, GENERIC_MESSAGES))

        if level in (LogLevel.ERROR, LogLevel.WARN):
            dedicated = SEVERITY_POOLS.get(kind, {}).get(level)
            if dedicated:
                message = self._rng.choice(dedicated)
            else:
                reason = self._rng.choice(GENERIC_REASONS[level])
                message = f"{level.value}: {reason} - {message}"

        return LogRecord(
            timestamp=datetime.now(timezone.utc),
            level=level,
            service=source_id,
            message=message,
        )

    def start(
        self,
        source_id: str,
        emit: Emit,
        *,
        on_start: Callable[[], Awaitable[None]] | None = None,
    ) -> SyntheticHandle:
        """Begin emitting records for *source_id*. Must be called on a running loop.

        *on_start* runs inside the stream task before the first record, so it
        is cancelled together with the stream.
        """
        logger.info(
            "Simulating logs for %s", source_id,
            extra={"source_id": source_id, "backend": "synthetic"},
        )
        task = asyncio.create_task(
            self._run(source_id, emit, on_start), name=f"synthetic:{source_id}",
        )
        return SyntheticHandle(source_id, task)

    async def stop(self, handle: SyntheticHandle) -> None:
        """Cancel the timer task. Idempotent."""
        if handle.task.done():
            return
        handle.task.cancel()
        if handle.task is asyncio.current_task():
            return
        await asyncio.wait({handle.task}, timeout=self.stop_timeout)

    async def _run(
        self,
        source_id: str,
        emit: Emit,
        on_start: Callable[[], Awaitable[None]] | None,
    ) -> None:
        if on_start is not None:
            await on_start()
        while True:
            await asyncio.sleep(self.next_delay())
            await emit(self.generate(source_id))
