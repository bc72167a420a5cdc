from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError

from logstream.errors import ProtocolError


class LogLevel(str, Enum):
    INFO = "INFO"
    DEBUG = "DEBUG"
    WARN = "WARN"
    ERROR = "ERROR"


class BackendKind(str, Enum):
    PROCESS = "process"
    SYNTHETIC = "synthetic"


class LogRecord(BaseModel):
    """One classified log line. Immutable once created."""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    level: LogLevel = LogLevel.INFO
    service: str
    message: str

    model_config = {"frozen": True}


# ---------- Client -> server ----------

class SubscribeRequest(BaseModel):
    type: Literal["subscribe"]
    # "containerId" is what older viewers send
    source_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("sourceId", "containerId", "source_id"),
    )


class UnsubscribeRequest(BaseModel):
    type: Literal["unsubscribe"]


ClientMessage = Annotated[
    Union[SubscribeRequest, UnsubscribeRequest],
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(raw: str | bytes) -> SubscribeRequest | UnsubscribeRequest:
    """Decode one inbound frame, raising ProtocolError on anything unexpected."""
    try:
        return _client_message_adapter.validate_json(raw)
    except ValidationError as exc:
        raise ProtocolError(f"Invalid message format: {exc.error_count()} error(s)") from exc


# ---------- Server -> client ----------

class ConnectedMessage(BaseModel):
    type: Literal["connected"] = "connected"


class LogMessage(BaseModel):
    type: Literal["log"] = "log"
    data: LogRecord


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    message: str


ServerMessage = Union[ConnectedMessage, LogMessage, ErrorMessage]
