"""
Schedule builder

Converts raw channel list and schedule window payloads into the canonical
schedule model.
"""
from datetime import date
from typing import Any
import logging
import re

from pydantic import ValidationError

from magenta_epg.exceptions import InvalidResponseShape
from magenta_epg.schemas import UpstreamChannelList, UpstreamProgramme, UpstreamScheduleWindow
from magenta_epg.services.schedule_types import Channel, LocalizedText, Programme, ScheduleWindow
from magenta_epg.utils.timezone import DateFormatError, format_xmltv_time, parse_iso8601_to_utc

logger = logging.getLogger(__name__)

LANG = "de"
HOUR_OFFSETS = tuple(range(0, 24, 3))

# Characters outside the XML 1.0 Char production
XML_ILLEGAL_CHARS = re.compile("[^\x09\x0a\x0d\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def xml_text(value: str) -> str:
    """Drop characters that cannot appear in an XML document"""
    return XML_ILLEGAL_CHARS.sub("", value)


def parse_channels(raw_json: bytes | str) -> list[Channel]:
    """
    Parse the channel list response

    Args:
        raw_json: Raw channel list payload

    Returns:
        Channels in upstream order

    Raises:
        InvalidResponseShape: If the payload has no ``channels`` array
    """
    try:
        payload = UpstreamChannelList.model_validate_json(raw_json)
    except ValidationError as e:
        raise InvalidResponseShape(f"Could not decode channel list: {e.error_count()} error(s), first: {e.errors()[0]['msg']}") from e

    channels = []
    for info in payload.channels:
        channel = Channel(id=info.station_id)
        if info.channel_logo:
            channel.icons.append(xml_text(info.channel_logo))
        channel.display_names.append(LocalizedText(xml_text(info.title)))
        channels.append(channel)

    logger.debug(f"Parsed {len(channels)} channels")
    return channels


def parse_programmes(raw_json: bytes | str, channel_id: str, target_tz: str) -> list[Programme]:
    """
    Parse one schedule window response for one channel

    Args:
        raw_json: Raw schedule window payload
        channel_id: Station id the window was requested for
        target_tz: Timezone of the emitted XMLTV timestamps

    Returns:
        Programmes of the window, empty if the channel has no entries

    Raises:
        InvalidResponseShape: If the payload has no ``channels`` map
    """
    try:
        payload = UpstreamScheduleWindow.model_validate_json(raw_json)
    except ValidationError as e:
        raise InvalidResponseShape(f"Could not decode schedule window for {channel_id}: {e.errors()[0]['msg']}") from e

    programmes = []
    for entry in payload.channels.get(channel_id) or []:
        if not entry:
            continue
        programme = _parse_single_programme(entry, channel_id, target_tz)
        if programme:
            programmes.append(programme)

    return programmes


def _parse_single_programme(entry: Any, channel_id: str, target_tz: str) -> Programme | None:
    """Parse single schedule entry"""
    try:
        info = UpstreamProgramme.model_validate(entry)
    except ValidationError as e:
        logger.warning(f"Skipping malformed programme on channel {channel_id}: {e.errors()[0]['msg']}")
        return None

    try:
        start = parse_iso8601_to_utc(info.start_time)
        end = parse_iso8601_to_utc(info.end_time)
    except DateFormatError as e:
        logger.warning(f"Skipping programme on channel {channel_id}: {e}")
        return None

    if start >= end:
        logger.warning(
            f"Skipping programme on channel {channel_id}: start {info.start_time} is not before end {info.end_time}"
        )
        return None

    programme = Programme(
        channel=channel_id,
        start=format_xmltv_time(start, target_tz),
        end=format_xmltv_time(end, target_tz),
    )
    programme.titles.append(LocalizedText(xml_text(info.description or ""), LANG))
    if info.release_year:
        programme.date = str(info.release_year)
    for genre in info.genres or []:
        programme.categories.append(LocalizedText(xml_text(genre.name), LANG))

    return programme


def is_excluded(channel: Channel, prefix: str) -> bool:
    """Channels whose primary display name starts with prefix get no schedule."""
    name = channel.primary_display_name
    return bool(prefix) and name is not None and name.startswith(prefix)


def schedule_windows(channel_id: str, today: date, tomorrow: date) -> list[ScheduleWindow]:
    """Enumerate the 16 windows (2 days x 8 three-hour offsets) of one channel."""
    return [
        ScheduleWindow(channel_id=channel_id, day=day, hour_offset=offset)
        for day in (today, tomorrow)
        for offset in HOUR_OFFSETS
    ]
