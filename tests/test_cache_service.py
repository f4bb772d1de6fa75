"""
Tests for the upstream response cache.
"""
from datetime import datetime, timedelta, timezone

import pytest

from magenta_epg.database import close_db
from magenta_epg.services.cache_service import ResponseCache


TTL = timedelta(hours=48)
WRITTEN_AT = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

pytestmark = pytest.mark.usefixtures("cache_db")


class TestResponseCache:
    """Test TTL handling and best-effort storage."""

    async def test_set_then_get(self):
        cache = ResponseCache(TTL)
        await cache.set("channels", b'{"channels": []}', now=WRITTEN_AT)

        assert await cache.get("channels", now=WRITTEN_AT) == b'{"channels": []}'
        assert await cache.has("channels", now=WRITTEN_AT) is True

    async def test_missing_key(self):
        cache = ResponseCache(TTL)

        assert await cache.get("date.20240101.0.14", now=WRITTEN_AT) is None
        assert await cache.has("date.20240101.0.14", now=WRITTEN_AT) is False

    async def test_entry_one_second_before_ttl_is_present(self):
        cache = ResponseCache(TTL)
        await cache.set("channels", b"payload", now=WRITTEN_AT)

        assert await cache.has("channels", now=WRITTEN_AT + TTL - timedelta(seconds=1))

    async def test_entry_exactly_at_ttl_is_present(self):
        cache = ResponseCache(TTL)
        await cache.set("channels", b"payload", now=WRITTEN_AT)

        assert await cache.has("channels", now=WRITTEN_AT + TTL)

    async def test_entry_past_ttl_is_absent(self):
        cache = ResponseCache(TTL)
        await cache.set("channels", b"payload", now=WRITTEN_AT)

        later = WRITTEN_AT + TTL + timedelta(seconds=1)
        assert await cache.has("channels", now=later) is False
        assert await cache.get("channels", now=later) is None

    async def test_overwrite_resets_write_time(self):
        cache = ResponseCache(TTL)
        await cache.set("channels", b"old", now=WRITTEN_AT)
        await cache.set("channels", b"new", now=WRITTEN_AT + timedelta(hours=40))

        later = WRITTEN_AT + TTL + timedelta(hours=1)
        assert await cache.get("channels", now=later) == b"new"

    async def test_purge_expired(self):
        cache = ResponseCache(TTL)
        await cache.set("old", b"1", now=WRITTEN_AT)
        await cache.set("fresh", b"2", now=WRITTEN_AT + timedelta(hours=47))

        deleted = await cache.purge_expired(now=WRITTEN_AT + TTL + timedelta(minutes=1))

        assert deleted == 1
        assert await cache.get("fresh", now=WRITTEN_AT + TTL) == b"2"

    async def test_storage_failure_is_a_miss(self):
        cache = ResponseCache(TTL)
        await close_db()

        # Neither call may raise without a database
        await cache.set("channels", b"payload", now=WRITTEN_AT)
        assert await cache.get("channels", now=WRITTEN_AT) is None
        assert await cache.purge_expired(now=WRITTEN_AT) == 0
