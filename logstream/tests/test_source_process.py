"""Tests for the external tailing process, driven by small Python scripts."""

import asyncio
import sys

import pytest

from logstream.config import settings
from logstream.errors import SourceNotFoundError, SourceRuntimeError
from logstream.models.log import LogLevel
from logstream.services.source_process import (
    ProcessEvent,
    SourceProcess,
    build_tail_command,
)


def _script(code: str) -> list[str]:
    return [sys.executable, "-c", code]


async def _collect(process: SourceProcess, timeout: float = 10.0) -> list[ProcessEvent]:
    async def drain() -> list[ProcessEvent]:
        return [event async for event in process.events()]

    return await asyncio.wait_for(drain(), timeout=timeout)


def test_build_tail_command_uses_backlog_and_follow() -> None:
    cmd = build_tail_command("redis", 50)
    assert cmd == [settings.tail_binary, "logs", "-f", "redis", "--tail", "50"]


def test_build_tail_command_default_backlog() -> None:
    assert build_tail_command("nginx")[-1] == str(settings.backlog_lines)


@pytest.mark.asyncio
async def test_stdout_lines_become_classified_records() -> None:
    process = SourceProcess(
        "redis",
        command=_script("print('1:M ready'); print(''); print('1:M # ERROR disk full')"),
    )
    await process.start()
    events = await _collect(process)

    records = [e.record for e in events if e.kind == "record"]
    assert [r.message for r in records] == ["1:M ready", "1:M # ERROR disk full"]
    assert records[1].level == LogLevel.ERROR
    assert all(r.service == "redis" for r in records)
    assert events[-1].kind == "closed"
    assert events[-1].returncode == 0
    assert sum(1 for e in events if e.kind == "closed") == 1


@pytest.mark.asyncio
async def test_not_found_stderr_is_distinguished() -> None:
    code = (
        "import sys; "
        "sys.stderr.write('Error response from daemon: No such container: ghost\\n'); "
        "sys.exit(1)"
    )
    process = SourceProcess("ghost", command=_script(code))
    await process.start()
    events = await _collect(process)

    errors = [e for e in events if e.kind == "error"]
    assert errors[0].not_found
    assert isinstance(errors[0].error, SourceNotFoundError)
    # Abnormal exit is reported after the diagnostic line
    assert isinstance(errors[-1].error, SourceRuntimeError)
    assert "code 1" in str(errors[-1].error)
    assert events[-1].kind == "closed"
    assert events[-1].returncode == 1


@pytest.mark.asyncio
async def test_other_stderr_is_generic_error() -> None:
    code = "import sys; sys.stderr.write('permission denied while trying to connect\\n')"
    process = SourceProcess("app", command=_script(code))
    await process.start()
    events = await _collect(process)

    errors = [e for e in events if e.kind == "error"]
    assert len(errors) == 1
    assert not errors[0].not_found
    assert "permission denied" in str(errors[0].error)


@pytest.mark.asyncio
async def test_missing_binary_raises_not_found() -> None:
    process = SourceProcess("redis", command=["logstream-no-such-binary-xyz", "logs"])
    with pytest.raises(SourceNotFoundError) as exc_info:
        await process.start()
    assert exc_info.value.source_id == "redis"
    # Stopping a process that never started is harmless
    await process.stop()


@pytest.mark.asyncio
async def test_spawn_failure_still_closes_event_stream() -> None:
    process = SourceProcess("redis", command=["logstream-no-such-binary-xyz", "logs"])
    with pytest.raises(SourceNotFoundError):
        await process.start()

    events = await _collect(process, timeout=2.0)
    assert [e.kind for e in events] == ["closed"]
    assert events[0].returncode is None


@pytest.mark.asyncio
async def test_stop_terminates_follow_process() -> None:
    code = "import time\nprint('started', flush=True)\nwhile True: time.sleep(0.1)"
    process = SourceProcess("app", command=_script(code), stop_timeout=2.0)
    await process.start()
    assert process.running

    events = process.events()
    first = await asyncio.wait_for(events.__anext__(), timeout=10.0)
    assert first.kind == "record"

    await process.stop()
    assert not process.running

    # A requested stop closes the stream without an exit error
    remaining = [e async for e in events]
    assert [e.kind for e in remaining] == ["closed"]


@pytest.mark.asyncio
async def test_stop_is_idempotent() -> None:
    code = "import time\nwhile True: time.sleep(0.1)"
    process = SourceProcess("app", command=_script(code))
    await process.start()
    await process.stop()
    await process.stop()
    assert not process.running
