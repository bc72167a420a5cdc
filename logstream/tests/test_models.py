"""Tests for the wire format."""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from logstream.errors import ProtocolError
from logstream.models.log import (
    ConnectedMessage,
    ErrorMessage,
    LogLevel,
    LogMessage,
    LogRecord,
    SubscribeRequest,
    UnsubscribeRequest,
    parse_client_message,
)
from logstream.services.classifier import classify


def test_log_record_survives_wire_round_trip() -> None:
    record = classify("1:M # WARNING low memory", "redis")
    restored = LogRecord.model_validate_json(record.model_dump_json())
    assert restored == record
    assert restored.timestamp == record.timestamp


def test_log_message_shape() -> None:
    record = LogRecord(
        timestamp=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        level=LogLevel.ERROR,
        service="redis",
        message="# ERROR disk full",
    )
    payload = json.loads(LogMessage(data=record).model_dump_json())
    assert payload["type"] == "log"
    assert payload["data"]["level"] == "ERROR"
    assert payload["data"]["service"] == "redis"
    assert payload["data"]["message"] == "# ERROR disk full"
    assert payload["data"]["timestamp"].startswith("2026-10-19T12:00:00")


def test_log_record_is_immutable() -> None:
    record = classify("hello", "app")
    with pytest.raises(ValidationError):
        record.message = "changed"  # type: ignore[misc]


def test_server_message_shapes() -> None:
    assert json.loads(ConnectedMessage().model_dump_json()) == {"type": "connected"}
    assert json.loads(ErrorMessage(message="boom").model_dump_json()) == {
        "type": "error", "message": "boom",
    }


class TestParseClientMessage:
    def test_subscribe_with_source_id(self) -> None:
        msg = parse_client_message('{"type": "subscribe", "sourceId": "nginx"}')
        assert isinstance(msg, SubscribeRequest)
        assert msg.source_id == "nginx"

    def test_subscribe_with_legacy_container_id(self) -> None:
        msg = parse_client_message('{"type": "subscribe", "containerId": "b0553f497026"}')
        assert isinstance(msg, SubscribeRequest)
        assert msg.source_id == "b0553f497026"

    def test_subscribe_without_source(self) -> None:
        msg = parse_client_message('{"type": "subscribe"}')
        assert isinstance(msg, SubscribeRequest)
        assert msg.source_id is None

    def test_unsubscribe(self) -> None:
        assert isinstance(parse_client_message('{"type": "unsubscribe"}'), UnsubscribeRequest)

    def test_bytes_frame(self) -> None:
        assert isinstance(parse_client_message(b'{"type": "unsubscribe"}'), UnsubscribeRequest)

    @pytest.mark.parametrize("raw", [
        "not json",
        "",
        "[]",
        '"subscribe"',
        '{"sourceId": "redis"}',
        '{"type": "tail", "sourceId": "redis"}',
        '{"type": "subscribe", "sourceId": 42}',
    ])
    def test_malformed_raises_protocol_error(self, raw: str) -> None:
        with pytest.raises(ProtocolError):
            parse_client_message(raw)
