"""Classify raw log lines into structured LogRecords."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone

from logstream.models.log import LogLevel, LogRecord
from logstream.services.sources import SourceProfile, get_profile

ERROR_KEYWORDS = ("error", "failed")
WARN_KEYWORDS = ("warning", "warn")
DEBUG_KEYWORDS = ("debug",)


def _has_marker(line: str, markers: tuple[str, ...]) -> bool:
    return any(marker in line for marker in markers)


def _has_keyword(lowered: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in lowered for keyword in keywords)


def infer_level(line: str, profile: SourceProfile | None = None) -> LogLevel:
    """Pick a severity by fixed priority: ERROR > WARN > DEBUG > INFO."""
    lowered = line.lower()
    error_markers = profile.error_markers if profile else ()
    warn_markers = profile.warn_markers if profile else ()
    debug_markers = profile.debug_markers if profile else ()

    if _has_marker(line, error_markers) or _has_keyword(lowered, ERROR_KEYWORDS):
        return LogLevel.ERROR
    if _has_marker(line, warn_markers) or _has_keyword(lowered, WARN_KEYWORDS):
        return LogLevel.WARN
    if _has_marker(line, debug_markers) or _has_keyword(lowered, DEBUG_KEYWORDS):
        return LogLevel.DEBUG
    return LogLevel.INFO


def classify(
    raw_line: str,
    source_id: str,
    *,
    aliases: Mapping[str, str] | None = None,
) -> LogRecord:
    """Wrap *raw_line* from *source_id* in a LogRecord.

    Never fails: anything unrecognizable becomes an INFO record carrying the
    line verbatim. Timestamps embedded in the line are left in the message.
    """
    line = raw_line.rstrip("\r\n")
    return LogRecord(
        timestamp=datetime.now(timezone.utc),
        level=infer_level(line, get_profile(source_id, aliases)),
        service=source_id,
        message=line,
    )
