"""Tests for the recent-record window."""

from logstream.models.log import LogRecord
from logstream.services.record_store import RecentRecords


def _record(service: str, message: str) -> LogRecord:
    return LogRecord(service=service, message=message)


def test_window_is_bounded() -> None:
    store = RecentRecords(maxlen=3)
    for i in range(5):
        store.append(_record("app", f"line {i}"))
    assert len(store) == 3
    assert [r.message for r in store.get_recent()] == ["line 2", "line 3", "line 4"]


def test_limit_returns_newest_oldest_first() -> None:
    store = RecentRecords(maxlen=10)
    for i in range(5):
        store.append(_record("app", f"line {i}"))
    assert [r.message for r in store.get_recent(limit=2)] == ["line 3", "line 4"]
    assert store.get_recent(limit=0) == []


def test_filter_by_service() -> None:
    store = RecentRecords(maxlen=10)
    store.append(_record("redis", "a"))
    store.append(_record("nginx", "b"))
    store.append(_record("redis", "c"))
    assert [r.message for r in store.get_recent(service="redis")] == ["a", "c"]


def test_clear() -> None:
    store = RecentRecords(maxlen=10)
    store.append(_record("app", "x"))
    store.clear()
    assert len(store) == 0
