"""Error taxonomy for log subscriptions.

Every error here is scoped to a single connection; none of them is fatal to
the server.
"""

from __future__ import annotations


class LogStreamError(Exception):
    """Base class for log streaming errors."""


class ProtocolError(LogStreamError):
    """An inbound client message could not be decoded."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class SourceNotFoundError(LogStreamError):
    """The log source cannot be tailed (binary missing or source unknown).

    Triggers the fallback to synthetic logs.
    """

    def __init__(self, source_id: str, reason: str) -> None:
        self.source_id = source_id
        self.reason = reason
        super().__init__(f"Source '{source_id}' unavailable: {reason}")


class SourceRuntimeError(LogStreamError):
    """Diagnostic output or an abnormal exit from a running tail."""

    def __init__(self, source_id: str, reason: str) -> None:
        self.source_id = source_id
        self.reason = reason
        super().__init__(reason)


class TeardownError(LogStreamError):
    """Releasing a backend resource failed. Logged, never sent to clients."""
