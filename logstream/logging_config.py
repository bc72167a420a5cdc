"""Logging setup for the log streaming server.

Development gets one coloured line per record, tagged with the connection and
source it concerns. Production gets newline-delimited JSON (NDJSON), so the
server's own diagnostics can be shipped next to the container logs it relays
without being mistaken for them.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

# ``extra=`` keys describing a subscription (connection, source, backend)
SUBSCRIPTION_FIELDS = ("connection_id", "source_id", "backend", "returncode")
# ``extra=`` keys set by the HTTP request middleware
REQUEST_FIELDS = ("request_id", "method", "path", "status_code", "duration_ms")

NOISY_LOGGERS = ("asyncio", "uvicorn.access", "websockets")


def _created_at(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


def _pick(record: logging.LogRecord, keys: tuple[str, ...]) -> dict[str, Any]:
    picked = {}
    for key in keys:
        val = getattr(record, key, None)
        if val is not None:
            picked[key] = val
    return picked


def _exception_text(record: logging.LogRecord) -> str | None:
    if not record.exc_info or record.exc_info[1] is None:
        return None
    return "".join(traceback.format_exception(*record.exc_info))


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    Subscription and request context are flattened into the top level:
        {"ts": "...", "level": "WARNING", "logger": "logstream.services.subscriptions",
         "msg": "Falling back to simulated logs for ghost",
         "connection_id": "9f1c2a...", "source_id": "ghost", "backend": "synthetic"}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": _created_at(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if record.levelno >= logging.WARNING:
            entry.update(file=record.pathname, line=record.lineno, func=record.funcName)

        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["exception"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        entry.update(_pick(record, SUBSCRIPTION_FIELDS))
        entry.update(_pick(record, REQUEST_FIELDS))
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """Coloured single-line output for a terminal."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def scope(record: logging.LogRecord) -> str:
        """``[conn source/backend]`` prefix built from whatever context is set."""
        ctx = _pick(record, SUBSCRIPTION_FIELDS)
        parts = []
        if "connection_id" in ctx:
            parts.append(str(ctx["connection_id"]))
        source = ctx.get("source_id")
        if source and "backend" in ctx:
            source = f"{source}/{ctx['backend']}"
        if source:
            parts.append(str(source))
        if "returncode" in ctx:
            parts.append(f"rc={ctx['returncode']}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = _created_at(record).strftime("%H:%M:%S")
        line = (
            f"{color}{ts} {record.levelname:<8}{self.RESET} "
            f"{record.name}{self.scope(record)}: {record.getMessage()}"
        )
        exc_text = _exception_text(record)
        if exc_text:
            line += "\n" + exc_text
        return line


def setup_logging(*, is_dev: bool = True, level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(DevFormatter() if is_dev else JSONFormatter())
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
