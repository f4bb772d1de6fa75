"""
XMLTV feed encoding and compression
"""
import gzip
import logging

from lxml import etree # type: ignore

from magenta_epg.services.schedule_types import LocalizedText, ScheduleDocument

logger = logging.getLogger(__name__)

SOURCE_INFO_URL = "https://tv.magenta.at/epg"
SOURCE_INFO_NAME = "Magenta"
GENERATOR_INFO_NAME = "magenta-epg"
DOCTYPE = '<!DOCTYPE tv SYSTEM "xmltv.dtd">'


def encode_xmltv(document: ScheduleDocument) -> bytes:
    """
    Serialize a schedule document to XMLTV

    Channels come first, then programmes; child order follows the XMLTV DTD.

    Args:
        document: Schedule document to encode

    Returns:
        UTF-8 encoded XMLTV document
    """
    root = etree.Element("tv")
    root.set("source-info-url", SOURCE_INFO_URL)
    root.set("source-info-name", SOURCE_INFO_NAME)
    root.set("generator-info-name", GENERATOR_INFO_NAME)

    for channel in document.channels:
        element = etree.SubElement(root, "channel", id=channel.id)
        for name in channel.display_names:
            _add_text(element, "display-name", name)
        for icon in channel.icons:
            etree.SubElement(element, "icon", src=icon)

    for programme in document.programmes:
        element = etree.SubElement(root, "programme")
        element.set("start", programme.start)
        element.set("stop", programme.end)
        element.set("channel", programme.channel)
        for title in programme.titles:
            _add_text(element, "title", title)
        if programme.date:
            etree.SubElement(element, "date").text = programme.date
        for category in programme.categories:
            _add_text(element, "category", category)

    xml = etree.tostring(
        root,
        xml_declaration=True,
        encoding="UTF-8",
        pretty_print=True,
        doctype=DOCTYPE,
    )
    logger.info(
        f"Encoded XMLTV: {len(document.channels)} channels, {len(document.programmes)} programmes, {len(xml) / 1024:.1f} KB"
    )
    return xml


def _add_text(parent: etree._Element, tag: str, value: LocalizedText) -> None:
    child = etree.SubElement(parent, tag)
    if value.lang:
        child.set("lang", value.lang)
    child.text = value.text


def compress(data: bytes) -> bytes:
    """Gzip at level 9 with a zeroed header timestamp, so equal input gives equal output."""
    return gzip.compress(data, compresslevel=9, mtime=0)
