from typing import Optional
import logging

from lxml import etree # type: ignore

from epg_aggregator.services.fetch_types import ChannelInfo, Programme
from epg_aggregator.utils.timezone import DateFormatError, parse_xmltv_time

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown"
DEFAULT_MAX_PROGRAMMES = 50


def _parse_payload(raw_payload: str) -> Optional[etree._Element]:
    """Parse payload leniently; returns None when nothing usable remains"""
    parser = etree.XMLParser(recover=True, resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(raw_payload.encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError as e:
        logger.debug(f"  Unrecoverable XML payload: {e}")
        return None


def extract_schedule(
    raw_payload: str,
    channel_id: str,
    max_programmes: int = DEFAULT_MAX_PROGRAMMES
) -> tuple[ChannelInfo, list[Programme]]:
    """
    Parse one channel's raw schedule once, returning channel metadata and programmes

    Args:
        raw_payload: Upstream XMLTV document for a single channel
        channel_id: Output channel id to stamp on every record
        max_programmes: Ceiling on records returned for this channel

    Returns:
        Tuple of (channel_info, programmes)
        - programmes are in payload order, malformed entries skipped
    """
    root = _parse_payload(raw_payload)
    if root is None:
        logger.warning(f"Could not parse schedule payload for {channel_id}")
        return ChannelInfo(channel_id=channel_id, display_name=channel_id), []

    return _parse_channel(root, channel_id), _parse_programmes(root, channel_id, max_programmes)


def extract(raw_payload: str, channel_id: str, max_programmes: int = DEFAULT_MAX_PROGRAMMES) -> list[Programme]:
    """Extract programme records from one channel's raw schedule"""
    return extract_schedule(raw_payload, channel_id, max_programmes)[1]


def extract_channel_info(raw_payload: str, channel_id: str) -> ChannelInfo:
    """Extract display name and icon of the payload's first channel element"""
    root = _parse_payload(raw_payload)
    if root is None:
        return ChannelInfo(channel_id=channel_id, display_name=channel_id)
    return _parse_channel(root, channel_id)


def _parse_programmes(root: etree._Element, channel_id: str, max_programmes: int) -> list[Programme]:
    """Extract capped programme list from the payload root"""
    programmes = []
    skipped = 0

    for element in root.iter('programme'):
        if len(programmes) >= max_programmes:
            break

        programme = _parse_single_programme(element, channel_id)
        if programme is None:
            skipped += 1
            continue
        programmes.append(programme)

    if skipped:
        logger.debug(f"  {channel_id}: skipped {skipped} malformed programme entries")

    return programmes


def _parse_channel(root: etree._Element, channel_id: str) -> ChannelInfo:
    """Extract the first channel element, falling back to the channel id"""
    channel = root.find('channel')
    if channel is None:
        return ChannelInfo(channel_id=channel_id, display_name=channel_id)

    display_name = _get_text(channel, 'display-name', default=channel_id)

    icon_url = None
    icon_elem = channel.find('icon')
    if icon_elem is not None:
        icon_url = icon_elem.get('src') or None

    return ChannelInfo(
        channel_id=channel_id,
        display_name=display_name or channel_id,
        icon_url=icon_url
    )


def _parse_single_programme(element: etree._Element, channel_id: str) -> Optional[Programme]:
    """Parse single programme element"""
    start_str = element.get('start')
    stop_str = element.get('stop')
    if not start_str or not stop_str:
        return None

    # Parse times (skip invalid formats)
    try:
        start_time = parse_xmltv_time(start_str)
        stop_time = parse_xmltv_time(stop_str)
    except DateFormatError:
        return None

    return Programme(
        channel_id=channel_id,
        start=start_time,
        stop=stop_time,
        title=_get_text(element, 'title') or UNKNOWN_TITLE,
        description=_get_text(element, 'desc', default='') or ''
    )


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Safely extract text from XML element"""
    child = element.find(tag)
    if child is None or not child.text:
        return default
    text = child.text.strip()
    return text or default
