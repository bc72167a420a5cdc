"""Per-connection log subscriptions.

Each connection has at most one active Subscription, backed either by a live
``docker logs`` process or by the synthetic generator:

    Idle --subscribe--> Active(process) --not found / spawn error--> Active(synthetic)
    Active(*) --unsubscribe / close / subscribe--> Idle (then maybe Active again)

Two kinds of locking:

* the manager lock guards the registry (connection_id -> Subscription) and is
  only held for the dict update itself, never across client sends or process
  reaping;
* a per-connection lock orders subscribe/unsubscribe/fallback for one
  connection, so tearing down its old backend always finishes before the
  next one is started. A slow teardown or a stalled socket only ever holds up
  its own connection.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Union

from logstream.config import settings
from logstream.errors import SourceNotFoundError, TeardownError
from logstream.models.log import BackendKind, ErrorMessage, LogMessage, LogRecord, ServerMessage
from logstream.services.record_store import RecentRecords
from logstream.services.source_process import SourceProcess
from logstream.services.synthetic import SyntheticHandle, SyntheticSourceGenerator
from logstream.telemetry import trace_span

logger = logging.getLogger(__name__)

Send = Callable[[ServerMessage], Awaitable[None]]
ProcessFactory = Callable[[str], SourceProcess]


@dataclass
class Subscription:
    connection_id: str
    source_id: str
    backend: BackendKind
    handle: Union[SourceProcess, SyntheticHandle]
    # Supervises process output; None for synthetic subscriptions
    task: asyncio.Task[None] | None = None


@dataclass
class _ConnectionSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


def _not_found_notice(source_id: str) -> str:
    return f"Container {source_id} not found. Using simulated logs."


class SubscriptionManager:
    """Start, supervise, and tear down one log backend per connection.

    Args:
        process_factory: Builds the SourceProcess for a source id.
        generator: Synthetic generator used as the fallback backend.
        records: Recent-record window fed with every delivered record.
        teardown_timeout: Max seconds to wait for a backend task to finish.
    """

    def __init__(
        self,
        *,
        process_factory: ProcessFactory | None = None,
        generator: SyntheticSourceGenerator | None = None,
        records: RecentRecords | None = None,
        teardown_timeout: float | None = None,
    ) -> None:
        self._process_factory = process_factory or SourceProcess
        self._generator = generator or SyntheticSourceGenerator()
        self.records = records if records is not None else RecentRecords()
        self._teardown_timeout = (
            settings.teardown_timeout_seconds if teardown_timeout is None else teardown_timeout
        )
        self._subscriptions: dict[str, Subscription] = {}
        self._lock = asyncio.Lock()
        self._slots: dict[str, _ConnectionSlot] = {}

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get(self, connection_id: str) -> Subscription | None:
        return self._subscriptions.get(connection_id)

    @property
    def active_count(self) -> int:
        return len(self._subscriptions)

    @property
    def stats(self) -> dict[str, Any]:
        """Subscription counts by backend, for the health endpoint."""
        by_backend = {kind.value: 0 for kind in BackendKind}
        for sub in self._subscriptions.values():
            by_backend[sub.backend.value] += 1
        return {"active": len(self._subscriptions), **by_backend}

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def subscribe(self, connection_id: str, source_id: str, send: Send) -> Subscription:
        """Replace whatever *connection_id* is following with *source_id*."""
        with trace_span(
            "subscription.subscribe",
            {"connection.id": connection_id, "source.id": source_id},
        ) as span:
            async with self._connection(connection_id):
                await self._teardown(connection_id)
                logger.info(
                    "Subscribing to logs for container: %s", source_id,
                    extra={"connection_id": connection_id, "source_id": source_id},
                )
                sub = await self._start(connection_id, source_id, send)
            span.set_attribute("subscription.backend", sub.backend.value)
        return sub

    async def unsubscribe(self, connection_id: str) -> None:
        """Tear down the connection's backend. No-op when already idle."""
        async with self._connection(connection_id):
            await self._teardown(connection_id)

    async def shutdown(self) -> None:
        """Tear down every subscription (server shutdown)."""
        async with self._lock:
            connection_ids = list(self._subscriptions)
        await asyncio.gather(*(self.unsubscribe(cid) for cid in connection_ids))
        logger.info("Subscription manager stopped")

    # ------------------------------------------------------------------
    # Backend lifecycle (caller holds the connection lock)
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _connection(self, connection_id: str) -> AsyncIterator[None]:
        """Serialize lifecycle changes for one connection."""
        slot = self._slots.get(connection_id)
        if slot is None:
            slot = self._slots[connection_id] = _ConnectionSlot()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if not slot.users:
                del self._slots[connection_id]

    async def _register(self, sub: Subscription) -> None:
        async with self._lock:
            self._subscriptions[sub.connection_id] = sub

    async def _start(self, connection_id: str, source_id: str, send: Send) -> Subscription:
        process = self._process_factory(source_id)
        try:
            await process.start()
        except SourceNotFoundError as exc:
            await self._stop_backend(connection_id, BackendKind.PROCESS, process)
            return await self._start_synthetic(
                connection_id, source_id, send,
                f"Error retrieving logs: {exc.reason}. Using simulated logs.",
            )

        sub = Subscription(connection_id, source_id, BackendKind.PROCESS, process)
        sub.task = asyncio.create_task(
            self._supervise(sub, process, send), name=f"supervise:{connection_id}",
        )
        await self._register(sub)
        return sub

    async def _start_synthetic(
        self, connection_id: str, source_id: str, send: Send, notice: str,
    ) -> Subscription:
        logger.warning(
            "Falling back to simulated logs for %s", source_id,
            extra={"connection_id": connection_id, "source_id": source_id, "backend": "synthetic"},
        )
        # The notice goes out from the stream task ahead of its first record
        handle = self._generator.start(
            source_id,
            functools.partial(self._deliver, connection_id, send),
            on_start=functools.partial(
                self._send, connection_id, send, ErrorMessage(message=notice),
            ),
        )
        sub = Subscription(connection_id, source_id, BackendKind.SYNTHETIC, handle)
        await self._register(sub)
        return sub

    async def _teardown(self, connection_id: str) -> None:
        async with self._lock:
            sub = self._subscriptions.pop(connection_id, None)
        if sub is None:
            return
        if (
            sub.task is not None
            and sub.task is not asyncio.current_task()
            and not sub.task.done()
        ):
            sub.task.cancel()
            await asyncio.wait({sub.task}, timeout=self._teardown_timeout)
        await self._stop_backend(connection_id, sub.backend, sub.handle)
        logger.info(
            "Unsubscribed from %s", sub.source_id,
            extra={"connection_id": connection_id, "source_id": sub.source_id,
                   "backend": sub.backend.value},
        )

    async def _stop_backend(
        self,
        connection_id: str,
        backend: BackendKind,
        handle: Union[SourceProcess, SyntheticHandle],
    ) -> None:
        """Release a backend. Failures are logged and never propagate."""
        try:
            if isinstance(handle, SyntheticHandle):
                await self._generator.stop(handle)
            else:
                await handle.stop()
        except TeardownError as exc:
            logger.error(
                "Error killing log process: %s", exc,
                extra={"connection_id": connection_id, "backend": backend.value},
            )
        except Exception:
            logger.exception(
                "Unexpected error releasing %s backend", backend.value,
                extra={"connection_id": connection_id, "backend": backend.value},
            )

    # ------------------------------------------------------------------
    # Process supervision
    # ------------------------------------------------------------------

    async def _supervise(self, sub: Subscription, process: SourceProcess, send: Send) -> None:
        """Forward process events to the connection until the process closes."""
        first_error = True
        try:
            async for event in process.events():
                if event.kind == "record" and event.record is not None:
                    await self._deliver(sub.connection_id, send, event.record)
                elif event.kind == "error":
                    if event.not_found and first_error:
                        await self._fall_back(sub, process, send)
                        return
                    first_error = False
                    await self._send(sub.connection_id, send, ErrorMessage(message=str(event.error)))
                elif event.kind == "closed":
                    break
        except Exception:
            logger.exception(
                "Log supervisor for %s crashed", sub.source_id,
                extra={"connection_id": sub.connection_id, "source_id": sub.source_id},
            )

        async with self._lock:
            if self._subscriptions.get(sub.connection_id) is sub:
                del self._subscriptions[sub.connection_id]
        await self._stop_backend(sub.connection_id, sub.backend, process)

    async def _fall_back(self, sub: Subscription, process: SourceProcess, send: Send) -> None:
        """Swap a not-found process subscription for a synthetic one."""
        async with self._connection(sub.connection_id):
            if self._subscriptions.get(sub.connection_id) is not sub:
                return
            with trace_span(
                "subscription.fallback",
                {"connection.id": sub.connection_id, "source.id": sub.source_id},
            ):
                await self._stop_backend(sub.connection_id, sub.backend, process)
                await self._start_synthetic(
                    sub.connection_id, sub.source_id, send, _not_found_notice(sub.source_id),
                )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver(self, connection_id: str, send: Send, record: LogRecord) -> None:
        self.records.append(record)
        await self._send(connection_id, send, LogMessage(data=record))

    async def _send(self, connection_id: str, send: Send, message: ServerMessage) -> None:
        """Best-effort send; a dead connection just drops the message."""
        try:
            await send(message)
        except Exception as exc:
            logger.debug(
                "Dropped %s message: %s", message.type, exc,
                extra={"connection_id": connection_id},
            )
