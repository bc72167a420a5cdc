from .log import (
    BackendKind,
    ConnectedMessage,
    ErrorMessage,
    LogLevel,
    LogMessage,
    LogRecord,
    ServerMessage,
    SubscribeRequest,
    UnsubscribeRequest,
    parse_client_message,
)

__all__ = [
    "BackendKind",
    "ConnectedMessage",
    "ErrorMessage",
    "LogLevel",
    "LogMessage",
    "LogRecord",
    "ServerMessage",
    "SubscribeRequest",
    "UnsubscribeRequest",
    "parse_client_message",
]
