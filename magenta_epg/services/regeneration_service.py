"""
Feed Regeneration Service

Coordinates staleness detection, the single-flight lease, cached upstream
fetching, document building, channel id remapping, and artifact packaging.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import partial
from pathlib import Path
from typing import Literal, TypeVar

from magenta_epg.config import CustomSettings, settings
from magenta_epg.exceptions import FeedError
from magenta_epg.services.cache_service import CHANNELS_CACHE_KEY, ResponseCache
from magenta_epg.services.channel_remapper import load_channel_id_map, remap_channel_ids
from magenta_epg.services.feed_encoder import compress, encode_xmltv
from magenta_epg.services.regeneration_lock import LeaseLock
from magenta_epg.services.schedule_builder import (
    is_excluded,
    parse_channels,
    parse_programmes,
    schedule_windows,
)
from magenta_epg.services.schedule_types import ScheduleDocument, ScheduleWindow
from magenta_epg.services.upstream_client import MagentaClient
from magenta_epg.utils.file_operations import file_age, file_modified_at, read_file, write_file_atomic
from magenta_epg.utils.logging_helpers import log_section_end, log_section_start
from magenta_epg.utils.timezone import schedule_days


logger = logging.getLogger(__name__)

ARTIFACT_NAME = "epg.xml.gz"
XML_COPY_NAME = "epg.xml"
LEASE_NAME = "epg-is-being-generated"

T = TypeVar("T")


@dataclass(slots=True)
class RegenerationResult:
    status: Literal["success", "failed", "skipped"]
    started_at: datetime
    completed_at: datetime
    message: str | None = None
    error_kind: str | None = None
    channels: int = 0
    programmes: int = 0

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    def to_dict(self) -> dict:
        payload = {
            "status": self.status,
            "message": self.message,
            "channels": self.channels,
            "programmes": self.programmes,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }
        if self.error_kind:
            payload["error_kind"] = self.error_kind
        return payload


class RegenerationController:
    """Runs at most one feed regeneration at a time and contains its failures."""

    def __init__(
        self,
        data_dir: Path | str,
        cache: ResponseCache,
        client_factory: Callable[[], MagentaClient],
        *,
        channel_id_map: Mapping[str, str] | None = None,
        target_tz: str = "Europe/Vienna",
        excluded_prefix: str = "Sky",
        staleness_threshold: timedelta = timedelta(hours=12),
        lock_ttl: timedelta = timedelta(hours=1),
        max_concurrency: int = 4,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.cache = cache
        self.client_factory = client_factory
        self.channel_id_map = channel_id_map
        self.target_tz = target_tz
        self.excluded_prefix = excluded_prefix
        self.staleness_threshold = staleness_threshold
        self.lease_lock = LeaseLock(self.data_dir / LEASE_NAME, lock_ttl)
        self._concurrency = max(1, max_concurrency)

    @property
    def artifact_path(self) -> Path:
        return self.data_dir / ARTIFACT_NAME

    @property
    def xml_copy_path(self) -> Path:
        return self.data_dir / XML_COPY_NAME

    def artifact_generated_at(self) -> datetime | None:
        return file_modified_at(self.artifact_path)

    async def read_artifact(self) -> bytes | None:
        return await read_file(self.artifact_path)

    def needs_regeneration(self, now: datetime | None = None) -> bool:
        """Regenerate iff no lease is held and the artifact is missing or older than the threshold."""
        now = now or datetime.now(timezone.utc)
        if self.lease_lock.is_held():
            return False
        age = file_age(self.artifact_path, now)
        return age is None or age > self.staleness_threshold

    async def regenerate_if_needed(self, now: datetime | None = None, *, force: bool = False) -> RegenerationResult:
        """
        Entry point for every external trigger (poll, scheduled check or manual fetch).

        Sweeps an abandoned lease first, then regenerates when the feed is stale.
        With force the feed age is ignored, but a live lease still wins.
        """
        now = now or datetime.now(timezone.utc)
        try:
            self.lease_lock.sweep_stale(now)
            stale = force or self.needs_regeneration(now)
        except OSError as exc:
            logger.error("Could not inspect feed state in %s: %s", self.data_dir, exc)
            return self._failed(now, type(exc).__name__, str(exc))

        if not stale:
            logger.debug("Feed is fresh or a regeneration is running, nothing to do")
            return RegenerationResult(
                status="skipped",
                started_at=now,
                completed_at=now,
                message="Feed is up to date or being regenerated",
            )
        return await self.regenerate(now)

    async def regenerate(self, now: datetime | None = None) -> RegenerationResult:
        """
        Run one regeneration under the lease, regardless of artifact age.

        The lease is taken before any network activity and always released.
        Nothing is written unless every step succeeded.
        """
        started_at = now or datetime.now(timezone.utc)
        try:
            lease = self.lease_lock.acquire(started_at)
        except OSError as exc:
            logger.error("Could not take regeneration lease %s: %s", self.lease_lock.path, exc)
            return self._failed(started_at, type(exc).__name__, str(exc))
        if lease is None:
            return RegenerationResult(
                status="skipped",
                started_at=started_at,
                completed_at=started_at,
                message="Feed regeneration already in progress",
            )

        log_section_start(logger, "feed regeneration")
        try:
            document = await self._build_document(started_at)
            await self._write_artifacts(document)
        except FeedError as exc:
            logger.error("Feed regeneration failed (%s): %s", exc.kind, exc)
            return self._failed(started_at, exc.kind, str(exc))
        except Exception as exc:  # Catch-all to keep the serving path alive
            logger.error("Unexpected error during feed regeneration: %s", exc, exc_info=True)
            return self._failed(started_at, "UnexpectedError", str(exc))
        finally:
            self.lease_lock.release(lease)

        await self.cache.purge_expired()
        log_section_end(logger, "feed regeneration")
        return RegenerationResult(
            status="success",
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            message="Feed regenerated",
            channels=len(document.channels),
            programmes=len(document.programmes),
        )

    def _failed(self, started_at: datetime, kind: str, message: str) -> RegenerationResult:
        return RegenerationResult(
            status="failed",
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            message=message,
            error_kind=kind,
        )

    async def _build_document(self, now: datetime) -> ScheduleDocument:
        today, tomorrow = schedule_days(now, self.target_tz)
        document = ScheduleDocument()

        async with self.client_factory() as client:
            logger.info("Loading configuration ...")
            await client.bootstrap_session()

            logger.info("Loading channels ...")
            document.channels = await self._load_cached(
                CHANNELS_CACHE_KEY,
                client.fetch_channel_list,
                parse_channels,
            )
            logger.info("Loaded %s channels", len(document.channels))

            windows = self._plan_windows(document, today, tomorrow)
            logger.info(
                "Loading programmes: %s schedule windows (concurrency %s) ...",
                len(windows),
                self._concurrency,
            )
            await self._load_windows(client, windows, document)

        logger.info("Loaded %s programmes", len(document.programmes))

        if self.channel_id_map is not None:
            logger.info("Mapping channel IDs to A1 ...")
            remap_channel_ids(document, self.channel_id_map)

        return document

    def _plan_windows(self, document: ScheduleDocument, today: date, tomorrow: date) -> list[ScheduleWindow]:
        windows: list[ScheduleWindow] = []
        planned: set[str] = set()
        for channel in document.channels:
            if is_excluded(channel, self.excluded_prefix):
                logger.debug('Skipping channel "%s"', channel.primary_display_name)
                continue
            if channel.id in planned:
                continue
            planned.add(channel.id)
            windows.extend(schedule_windows(channel.id, today, tomorrow))
        return windows

    async def _load_windows(
        self,
        client: MagentaClient,
        windows: list[ScheduleWindow],
        document: ScheduleDocument,
    ) -> None:
        semaphore = asyncio.Semaphore(self._concurrency)

        async def load_window(window: ScheduleWindow) -> None:
            async with semaphore:
                programmes = await self._load_cached(
                    window.cache_key,
                    partial(client.fetch_schedule_window, window.channel_id, window.day, window.hour_offset),
                    partial(parse_programmes, channel_id=window.channel_id, target_tz=self.target_tz),
                )
            document.programmes.extend(programmes)

        tasks = [asyncio.create_task(load_window(window)) for window in windows]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # First error wins: stop every window still in flight
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _load_cached(
        self,
        key: str,
        fetch: Callable[[], Awaitable[bytes]],
        parse: Callable[[bytes], T],
    ) -> T:
        """Cache-first load; fresh payloads are cached only after they parsed."""
        raw = await self.cache.get(key)
        if raw is not None:
            logger.debug('Loading infos from cache "%s"', key)
            return parse(raw)

        raw = await fetch()
        parsed = parse(raw)
        await self.cache.set(key, raw)
        return parsed

    async def _write_artifacts(self, document: ScheduleDocument) -> None:
        xml = encode_xmltv(document)
        # The served artifact goes first; the plain copy only ever mirrors it
        await write_file_atomic(self.artifact_path, compress(xml))
        await write_file_atomic(self.xml_copy_path, xml)


def build_controller(config: CustomSettings) -> RegenerationController:
    """Create a controller wired from application settings."""
    channel_id_map = None
    if config.map_channel_ids_to_a1:
        channel_id_map = load_channel_id_map(config.channel_id_map_path)

    return RegenerationController(
        config.data_dir,
        ResponseCache(timedelta(seconds=config.cache_ttl_sec)),
        partial(MagentaClient, timeout=config.upstream_timeout_sec),
        channel_id_map=channel_id_map,
        target_tz=config.epg_timezone,
        excluded_prefix=config.excluded_channel_prefix,
        staleness_threshold=timedelta(seconds=config.staleness_threshold_sec),
        lock_ttl=timedelta(seconds=config.lock_ttl_sec),
        max_concurrency=config.fetch_concurrency,
    )


# Global singleton instance
_controller: RegenerationController | None = None


def get_regeneration_controller() -> RegenerationController:
    """
    Get or create the global regeneration controller singleton.

    Returns:
        The global RegenerationController instance
    """
    global _controller
    if _controller is None:
        _controller = build_controller(settings)
    return _controller


def reset_regeneration_controller() -> None:
    """
    Reset the regeneration controller (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _controller
    _controller = None
