"""
Shared fixtures: an in-memory key-value store and record factories
"""

import fnmatch
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from attribution_worker.core.config.settings import AttributionSettings
from attribution_worker.core.exceptions import StorageConnectionError
from attribution_worker.domains.attribution.models import Conversion, Pageview
from attribution_worker.shared.helpers.codec import decode_value, encode_value

CONVERSION_TIME = datetime(2025, 7, 20, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryStore:
    """Async stand-in for the Redis client with the same five operations"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}
        self.failing_keys = set()
        self.deleted_batches: List[tuple] = []

    def _check(self, key: str) -> None:
        if key in self.failing_keys:
            raise StorageConnectionError(f"store unavailable for {key}")

    def put(self, key: str, value: Any) -> None:
        self.data[key] = encode_value(value)

    def load(self, key: str) -> Any:
        return decode_value(self.data.get(key))

    async def get(self, key: str) -> Optional[str]:
        self._check(key)
        return self.data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._check(key)
        self.data[key] = value
        self.ttls.pop(key, None)
        return True

    async def setex(self, key: str, ttl_seconds: int, value: str) -> bool:
        self._check(key)
        self.data[key] = value
        self.ttls[key] = ttl_seconds
        return True

    async def delete(self, *keys: str) -> int:
        self.deleted_batches.append(keys)
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    async def scan(self, cursor: int = 0, match: Optional[str] = None, count: Optional[int] = None):
        keys = sorted(k for k in self.data if match is None or fnmatch.fnmatchcase(k, match))
        count = count or 10
        page = keys[cursor : cursor + count]
        next_cursor = cursor + count if cursor + count < len(keys) else 0
        return next_cursor, page


class FakeClock:
    """Monotonic clock that only moves when told to"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_pageview(minutes_before: float = 30, **fields) -> Pageview:
    fields.setdefault("ip_address", "203.0.113.10")
    fields.setdefault("source", "google")
    fields.setdefault("landing_page", "/landing")
    return Pageview(timestamp=CONVERSION_TIME - timedelta(minutes=minutes_before), **fields)


def make_conversion(**fields) -> Conversion:
    fields.setdefault("order_id", "1001")
    fields.setdefault("email", "buyer@example.com")
    fields.setdefault("timestamp", CONVERSION_TIME)
    fields.setdefault("order_total", 49.5)
    return Conversion(**fields)


def pageview_record(minutes_before: float = 30, **fields) -> Dict[str, Any]:
    """Raw stored pageview record"""
    record = {
        "timestamp": (CONVERSION_TIME - timedelta(minutes=minutes_before)).isoformat(),
        "ip_address": "203.0.113.10",
        "source": "google",
        "landing_page": "/landing",
    }
    record.update(fields)
    return record


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return AttributionSettings()
