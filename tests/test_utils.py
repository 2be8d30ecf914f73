"""Tests for formatters and the bounded history buffer."""
import pytest
from datetime import datetime, timedelta, timezone

from utils.formatters import format_usd, format_number, format_timestamp, time_ago
from utils.history import BoundedHistory


class TestFormatters:
    def test_format_usd(self):
        assert format_usd(8000) == "$8,000.00"
        assert format_usd(1234.5) == "$1,234.50"
        assert format_usd(None) == "N/A"

    def test_format_number(self):
        assert format_number(20.0) == "20"
        assert format_number(7.5) == "7.5"
        assert format_number(None) == "N/A"

    def test_format_timestamp(self):
        ts = datetime(2024, 3, 1, 14, 30, tzinfo=timezone.utc)
        assert format_timestamp(ts) == "2024-03-01 14:30 UTC"
        assert format_timestamp(None) == "N/A"

    def test_time_ago(self):
        now = datetime.now(timezone.utc)
        assert time_ago(now - timedelta(minutes=5)) == "5m ago"
        assert time_ago(now - timedelta(hours=3)) == "3h ago"
        assert time_ago((now - timedelta(days=2)).isoformat()) == "2d ago"
        assert time_ago(None) == "never"


class TestBoundedHistory:
    def test_newest_first(self):
        h = BoundedHistory(3)
        for i in range(3):
            h.push(i)
        assert h.items() == [2, 1, 0]

    def test_evicts_oldest(self):
        h = BoundedHistory(3)
        for i in range(5):
            h.push(i)
        assert len(h) == 3
        assert h.items() == [4, 3, 2]

    def test_limit(self):
        h = BoundedHistory(10)
        for i in range(5):
            h.push(i)
        assert h.items(2) == [4, 3]
        assert h.items(0) == []

    def test_find_and_count(self):
        h = BoundedHistory(10)
        for i in range(6):
            h.push(i)
        assert h.find(lambda x: x % 2 == 1) == 5
        assert h.find(lambda x: x > 10) is None
        assert h.count(lambda x: x % 2 == 0) == 3

    def test_clear(self):
        h = BoundedHistory(2)
        h.push("a")
        h.clear()
        assert list(h) == []

    def test_invalid_maxlen(self):
        with pytest.raises(ValueError):
            BoundedHistory(0)
