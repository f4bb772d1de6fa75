"""
Channel id remapping

Rewrites provider station ids to A1 numeric ids using a static
display-name lookup table.
"""
import json
import logging
from collections.abc import Mapping
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from magenta_epg.services.schedule_types import ScheduleDocument


logger = logging.getLogger(__name__)

_ID_MAP_ADAPTER = TypeAdapter(dict[str, int | str])


def load_channel_id_map(path: Path | str) -> dict[str, str]:
    """
    Load the display-name to channel-id table.

    Args:
        path: JSON file holding an object of name -> id

    Returns:
        Mapping with ids as strings

    Raises:
        ValueError: If the file is not a flat name -> id object
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        table = _ID_MAP_ADAPTER.validate_python(raw)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ValueError(f"Invalid channel id map {path}: {exc}") from exc

    logger.debug("Loaded %s channel id mappings from %s", len(table), path)
    return {name: str(channel_id) for name, channel_id in table.items()}


def remap_channel_ids(document: ScheduleDocument, id_map: Mapping[str, str]) -> dict[str, str]:
    """
    Replace channel ids by their mapped id and follow up in every programme.

    Must run once per document, after all channels and programmes are in.

    Args:
        document: Fully populated schedule document
        id_map: Display name -> target id

    Returns:
        The old id -> new id mapping that was applied

    Raises:
        RuntimeError: If the document was already remapped
    """
    if document.channel_ids_remapped:
        raise RuntimeError("Channel ids of this document were already remapped")

    applied: dict[str, str] = {}
    for channel in document.channels:
        name = channel.primary_display_name
        new_id = id_map.get(name, channel.id) if name is not None else channel.id
        applied[channel.id] = new_id
        channel.id = new_id

    for programme in document.programmes:
        programme.channel = applied.get(programme.channel, programme.channel)

    document.channel_ids_remapped = True

    changed = sum(1 for old, new in applied.items() if old != new)
    logger.info("Mapped %s of %s channel ids to A1 ids", changed, len(applied))
    return applied
