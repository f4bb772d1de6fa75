"""
Response cache

Best-effort key/value store of raw upstream payloads with a fixed TTL,
backed by the SQLite cache database. Any storage failure is logged and
treated as a cache miss so it never aborts a regeneration run.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import cast

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError

from magenta_epg.database import session_scope
from magenta_epg.models import CacheEntry


logger = logging.getLogger(__name__)

CHANNELS_CACHE_KEY = "channels"


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class ResponseCache:
    """Upstream payload cache with per-entry expiry evaluated on read."""

    def __init__(self, ttl: timedelta) -> None:
        self.ttl = ttl

    def is_expired(self, stored_at: datetime, now: datetime) -> bool:
        """An entry expires once strictly more than ttl has passed since it was written."""
        return _to_naive_utc(now) - _to_naive_utc(stored_at) > self.ttl

    async def get(self, key: str, *, now: datetime | None = None) -> bytes | None:
        """
        Return the cached payload for key.

        Args:
            key: Cache key
            now: Reference time for the expiry check (defaults to current UTC time)

        Returns:
            Payload bytes, or None when absent, expired or unreadable
        """
        now = now or datetime.now(timezone.utc)
        try:
            async with session_scope() as session:
                result = await session.execute(
                    select(CacheEntry.payload, CacheEntry.stored_at).where(CacheEntry.key == key)
                )
                row = result.one_or_none()
        except (SQLAlchemyError, OSError, RuntimeError) as exc:
            logger.warning("Cache read failed for %s, treating as miss: %s", key, exc)
            return None

        if row is None:
            return None

        payload, stored_at = row
        if self.is_expired(stored_at, now):
            logger.debug("Cache entry %s expired (stored at %s)", key, stored_at.isoformat())
            return None
        return payload

    async def has(self, key: str, *, now: datetime | None = None) -> bool:
        return await self.get(key, now=now) is not None

    async def set(self, key: str, payload: bytes, *, now: datetime | None = None) -> None:
        """
        Store payload under key, overwriting any previous entry.

        Args:
            key: Cache key
            payload: Raw upstream bytes
            now: Write time recorded for the entry (defaults to current UTC time)
        """
        stored_at = _to_naive_utc(now or datetime.now(timezone.utc))
        stmt = sqlite_insert(CacheEntry).values(key=key, payload=payload, stored_at=stored_at)
        stmt = stmt.on_conflict_do_update(
            index_elements=[CacheEntry.key],
            set_={"payload": stmt.excluded.payload, "stored_at": stmt.excluded.stored_at},
        )
        try:
            async with session_scope() as session:
                await session.execute(stmt)
        except (SQLAlchemyError, OSError, RuntimeError) as exc:
            logger.warning("Cache write failed for %s, continuing without cache: %s", key, exc)
            return
        logger.debug("Cached %s bytes under %s", len(payload), key)

    async def purge_expired(self, *, now: datetime | None = None) -> int:
        """
        Delete entries whose TTL has passed.

        Returns:
            Number of deleted entries (0 if the purge failed)
        """
        cutoff = _to_naive_utc(now or datetime.now(timezone.utc)) - self.ttl
        try:
            async with session_scope() as session:
                result = cast(
                    CursorResult,
                    await session.execute(delete(CacheEntry).where(CacheEntry.stored_at < cutoff)),
                )
                deleted = result.rowcount or 0
        except (SQLAlchemyError, OSError, RuntimeError) as exc:
            logger.warning("Cache purge failed: %s", exc)
            return 0

        if deleted:
            logger.info("Purged %s expired cache entries (stored before %s)", deleted, cutoff.isoformat())
        return deleted
