"""
Shared dataclasses used across the feed regeneration pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date


@dataclass(slots=True)
class LocalizedText:
    """Text value with an optional language tag."""
    text: str
    lang: str | None = None


@dataclass(slots=True)
class Channel:
    """Channel record; id is the provider's station id unless remapped."""
    id: str
    display_names: list[LocalizedText] = field(default_factory=list)
    icons: list[str] = field(default_factory=list)

    @property
    def primary_display_name(self) -> str | None:
        return self.display_names[0].text if self.display_names else None


@dataclass(slots=True)
class Programme:
    """Programme record with start/end already in canonical XMLTV time format."""
    channel: str
    start: str
    end: str
    titles: list[LocalizedText] = field(default_factory=list)
    date: str | None = None
    categories: list[LocalizedText] = field(default_factory=list)


@dataclass(slots=True)
class ScheduleDocument:
    """Root aggregate built fresh for every regeneration run."""
    channels: list[Channel] = field(default_factory=list)
    programmes: list[Programme] = field(default_factory=list)
    channel_ids_remapped: bool = False

    def channel_ids(self) -> set[str]:
        return {channel.id for channel in self.channels}


@dataclass(slots=True, frozen=True)
class UpstreamSession:
    """Ephemeral credentials scraped from the provider landing page."""
    api_key: str
    app_version: str
    device_id: str


@dataclass(slots=True, frozen=True)
class ScheduleWindow:
    """One 3-hour slice of one channel's schedule on one calendar date."""
    channel_id: str
    day: date
    hour_offset: int

    @property
    def cache_key(self) -> str:
        return f"date.{self.day.strftime('%Y%m%d')}.{self.hour_offset}.{self.channel_id}"

    @property
    def query_date(self) -> str:
        return self.day.isoformat()


__all__ = [
    "Channel",
    "LocalizedText",
    "Programme",
    "ScheduleDocument",
    "ScheduleWindow",
    "UpstreamSession",
]
