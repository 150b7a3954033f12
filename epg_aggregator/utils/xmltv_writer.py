"""XMLTV listings serialization.

Renders programme records as an XMLTV document. Output is built as text so
that all five reserved characters are escaped exactly and identical input
always yields byte-identical output.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from xml.sax.saxutils import escape

from epg_aggregator.services.fetch_types import ChannelInfo, EnrichedProgramme, Programme
from epg_aggregator.utils.timezone import format_xmltv_time

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'
_ENTITIES = {'"': "&quot;", "'": "&apos;"}


@dataclass(frozen=True)
class GeneratorInfo:
    name: str = "Progressive EPG Aggregator"
    url: str = "https://github.com"
    source: str = "EPG.PW"


def escape_xml(value: object) -> str:
    """Escape & < > " ' and nothing else."""
    if value is None:
        return ""
    return escape(str(value), _ENTITIES)


def render_listings(
    programmes: Sequence[Programme],
    generator: GeneratorInfo,
    channels: Mapping[str, ChannelInfo] | None = None,
) -> str:
    """Render a complete XMLTV document.

    Channels are emitted once per distinct channel id in first-seen order,
    followed by every programme in input order.

    Args:
        programmes: Plain or enriched programme records
        generator: Generator metadata for the root element
        channels: Optional display metadata keyed by channel id

    Returns:
        XMLTV document text
    """
    channels = channels or {}
    parts = [
        XML_DECLARATION,
        f'<tv source-info-name="{escape_xml(generator.source)}" '
        f'generator-info-name="{escape_xml(generator.name)}" '
        f'generator-info-url="{escape_xml(generator.url)}">\n',
    ]

    seen: dict[str, None] = {}
    for programme in programmes:
        if programme.channel_id and programme.channel_id not in seen:
            seen[programme.channel_id] = None

    for channel_id in seen:
        info = channels.get(channel_id) or ChannelInfo(channel_id=channel_id, display_name=channel_id)
        parts.append(build_channel(info))

    for programme in programmes:
        parts.append(build_programme(programme))

    parts.append("</tv>")
    return "".join(parts)


def build_channel(channel: ChannelInfo) -> str:
    """Render a channel element."""
    xml = f'  <channel id="{escape_xml(channel.channel_id)}">\n'
    xml += f"    <display-name>{escape_xml(channel.display_name or channel.channel_id)}</display-name>\n"
    if channel.icon_url:
        xml += f'    <icon src="{escape_xml(channel.icon_url)}" />\n'
    xml += "  </channel>\n"
    return xml


def build_programme(programme: Programme) -> str:
    """Render a programme element, switching on the record variant."""
    xml = (
        f'  <programme start="{format_xmltv_time(programme.start)}" '
        f'stop="{format_xmltv_time(programme.stop)}" '
        f'channel="{escape_xml(programme.channel_id)}">\n'
    )

    if isinstance(programme, EnrichedProgramme):
        xml += _enriched_body(programme)
    else:
        xml += f"    <title>{escape_xml(programme.title)}</title>\n"
        if programme.description:
            xml += f"    <desc>{escape_xml(programme.description)}</desc>\n"

    xml += "  </programme>\n"
    return xml


def _enriched_body(programme: EnrichedProgramme) -> str:
    meta = programme.enrichment
    show_name = meta.show_name or programme.title

    title = f"{show_name} - {meta.episode_title}" if meta.episode_title else show_name
    xml = f"    <title>{escape_xml(title)}</title>\n"

    if meta.episode_title:
        xml += f"    <sub-title>{escape_xml(meta.episode_title)}</sub-title>\n"

    if meta.overview:
        xml += f"    <desc>{escape_xml(f'S{meta.season}E{meta.episode}: {meta.overview}')}</desc>\n"
    elif programme.description:
        xml += f"    <desc>{escape_xml(programme.description)}</desc>\n"

    xml += f'    <episode-num system="xmltv_ns">{meta.season - 1}.{meta.episode - 1}.</episode-num>\n'
    xml += f'    <episode-num system="onscreen">S{meta.season:02d}E{meta.episode:02d}</episode-num>\n'

    if meta.still_ref:
        xml += f'    <icon src="{escape_xml(meta.still_ref)}" />\n'
    if meta.poster_ref:
        xml += f'    <image src="{escape_xml(meta.poster_ref)}" />\n'

    xml += "    <category>series</category>\n"
    if meta.show_id:
        xml += f"    <category>tmdb:tv:{meta.show_id}</category>\n"
    return xml


def render_error_document(message: str, generator_name: str, now: datetime) -> str:
    """Valid listings document carrying a single synthetic error programme."""
    day_start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return (
        XML_DECLARATION
        + f'<tv generator-info-name="{escape_xml(generator_name)} Error Handler">\n'
        + '  <channel id="error">\n'
        + "    <display-name>Service Error</display-name>\n"
        + "  </channel>\n"
        + f'  <programme start="{format_xmltv_time(day_start)}" '
        + f'stop="{format_xmltv_time(day_start + timedelta(days=1))}" channel="error">\n'
        + "    <title>EPG Service Error</title>\n"
        + f"    <desc>{escape_xml(f'Error: {message}. Check logs for details.')}</desc>\n"
        + "  </programme>\n"
        + "</tv>"
    )


def render_unavailable_document(message: str) -> str:
    """Minimal document returned alongside a 503."""
    return XML_DECLARATION + "<tv>\n" + f"  <error>{escape_xml(message)}</error>\n" + "</tv>"


def listing_statistics(programmes: Sequence[Programme]) -> dict:
    """Summarize a programme list for logs, headers and diagnostics."""
    channels = set()
    enriched = 0
    first_day = None
    last_day = None

    for programme in programmes:
        if isinstance(programme, EnrichedProgramme):
            enriched += 1
        if programme.channel_id:
            channels.add(programme.channel_id)
        day = programme.start.astimezone(timezone.utc).strftime("%Y%m%d")
        if first_day is None or day < first_day:
            first_day = day
        if last_day is None or day > last_day:
            last_day = day

    total = len(programmes)
    return {
        "total": total,
        "enriched": enriched,
        "channels": len(channels),
        "date_range": {"start": first_day, "end": last_day},
        "enrichment_rate": f"{enriched / total * 100:.1f}%" if total else "0%",
    }


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.2f} KB"
    return f"{size_bytes / 1024 / 1024:.2f} MB"
