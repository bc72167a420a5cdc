"""Supervise one external log-tailing process.

Spawns ``docker logs -f <source> --tail <N>`` (or any command producing the
same line-oriented output) and turns its output into a typed event stream:

    stdout line         -> ProcessEvent(kind="record")
    stderr line         -> ProcessEvent(kind="error"), not_found when it matches
                           the not-found pattern
    non-zero exit       -> ProcessEvent(kind="error")
    process gone        -> ProcessEvent(kind="closed"), exactly once

There are no retries here: any failure is terminal for the instance and the
caller decides what to do next.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from logstream.config import settings
from logstream.errors import (
    LogStreamError,
    SourceNotFoundError,
    SourceRuntimeError,
    TeardownError,
)
from logstream.models.log import LogRecord
from logstream.services.classifier import classify

logger = logging.getLogger(__name__)

# Longest single log line the pump will accept (bytes)
STREAM_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class ProcessEvent:
    kind: Literal["record", "error", "closed"]
    record: LogRecord | None = None
    error: LogStreamError | None = None
    returncode: int | None = None

    @property
    def not_found(self) -> bool:
        return isinstance(self.error, SourceNotFoundError)


def build_tail_command(source_id: str, backlog_lines: int | None = None) -> list[str]:
    """Command line that follows *source_id* with a bounded backlog."""
    tail = settings.backlog_lines if backlog_lines is None else backlog_lines
    return [settings.tail_binary, "logs", "-f", source_id, "--tail", str(tail)]


class SourceProcess:
    """One tailing subprocess and the tasks pumping its output.

    Args:
        source_id: Source (container) to tail; also the ``service`` of records.
        command: Full argv to run; defaults to ``build_tail_command(source_id)``.
        not_found_pattern: Regex that marks a stderr line as "source not found".
        stop_timeout: Seconds to wait after SIGTERM before SIGKILL.
    """

    def __init__(
        self,
        source_id: str,
        *,
        command: Sequence[str] | None = None,
        not_found_pattern: str | None = None,
        aliases: Mapping[str, str] | None = None,
        stop_timeout: float | None = None,
    ) -> None:
        self.source_id = source_id
        self.command = list(command) if command else build_tail_command(source_id)
        self._not_found = re.compile(
            not_found_pattern or settings.not_found_pattern, re.IGNORECASE,
        )
        self._aliases = settings.source_alias_map if aliases is None else dict(aliases)
        self._stop_timeout = (
            settings.teardown_timeout_seconds if stop_timeout is None else stop_timeout
        )

        self._proc: asyncio.subprocess.Process | None = None
        self._events: asyncio.Queue[ProcessEvent] = asyncio.Queue()
        self._pump_task: asyncio.Task[None] | None = None
        self._stopping = False
        self._closed = False

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    async def start(self) -> None:
        """Spawn the tail. Raises SourceNotFoundError if it cannot be spawned."""
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as exc:
            logger.warning(
                "Error starting log process for %s: %s", self.source_id, exc,
                extra={"source_id": self.source_id},
            )
            self._closed = True
            self._events.put_nowait(ProcessEvent(kind="closed"))
            raise SourceNotFoundError(self.source_id, str(exc)) from exc

        logger.info(
            "Tailing %s (pid=%d)", self.source_id, self._proc.pid,
            extra={"source_id": self.source_id, "backend": "process"},
        )
        self._pump_task = asyncio.create_task(
            self._pump(), name=f"tail:{self.source_id}",
        )

    async def events(self) -> AsyncIterator[ProcessEvent]:
        """Yield events until (and including) the single ``closed`` event."""
        while True:
            event = await self._events.get()
            yield event
            if event.kind == "closed":
                return

    async def stop(self) -> None:
        """Terminate the process and its pump. Idempotent."""
        if self._stopping:
            return
        self._stopping = True

        try:
            await self._terminate()
        finally:
            if self._pump_task is not None and not self._pump_task.done():
                self._pump_task.cancel()
                await asyncio.wait({self._pump_task}, timeout=self._stop_timeout)

    async def _terminate(self) -> None:
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._stop_timeout)
            return
        except asyncio.TimeoutError:
            logger.warning(
                "Log process for %s ignored SIGTERM, killing", self.source_id,
                extra={"source_id": self.source_id},
            )
        try:
            proc.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._stop_timeout)
        except asyncio.TimeoutError as exc:
            raise TeardownError(
                f"Log process {proc.pid} for {self.source_id} did not exit"
            ) from exc

    # ------------------------------------------------------------------
    # Output pumping
    # ------------------------------------------------------------------

    async def _pump(self) -> None:
        assert self._proc is not None
        proc = self._proc
        try:
            await asyncio.gather(
                self._read_stdout(proc.stdout),
                self._read_stderr(proc.stderr),
            )
            await proc.wait()
        except ValueError as exc:
            # StreamReader gives up on lines longer than its limit
            logger.error(
                "Log stream for %s aborted: %s", self.source_id, exc,
                extra={"source_id": self.source_id},
            )
            self._events.put_nowait(ProcessEvent(
                kind="error",
                error=SourceRuntimeError(self.source_id, f"Log stream aborted: {exc}"),
            ))
        finally:
            # Runs on cancellation too so readers of events() never hang
            if not self._closed:
                self._closed = True
                self._emit_close(proc.returncode)

    def _emit_close(self, returncode: int | None) -> None:
        if returncode not in (0, None) and not self._stopping:
            logger.error(
                "Docker logs process exited with code %s", returncode,
                extra={"source_id": self.source_id, "returncode": returncode},
            )
            self._events.put_nowait(ProcessEvent(
                kind="error",
                error=SourceRuntimeError(
                    self.source_id, f"Log stream ended with code {returncode}",
                ),
            ))
        self._events.put_nowait(ProcessEvent(kind="closed", returncode=returncode))

    async def _read_stdout(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line.strip():
                continue
            record = classify(line, self.source_id, aliases=self._aliases)
            self._events.put_nowait(ProcessEvent(kind="record", record=record))

    async def _read_stderr(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            logger.warning(
                "Docker logs error: %s", line,
                extra={"source_id": self.source_id},
            )
            if self._not_found.search(line):
                error: LogStreamError = SourceNotFoundError(self.source_id, line)
            else:
                error = SourceRuntimeError(self.source_id, f"Error retrieving logs: {line}")
            self._events.put_nowait(ProcessEvent(kind="error", error=error))
