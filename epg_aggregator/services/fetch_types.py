"""
Shared dataclasses used across the listings pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True, slots=True)
class ChannelDescriptor:
    """Registry entry: output channel id and the upstream id it is sourced from."""
    output_id: str
    upstream_id: str | None = None

    @property
    def fetchable(self) -> bool:
        return bool(self.upstream_id)


@dataclass(frozen=True, slots=True)
class CachedChannelPayload:
    """Raw upstream payload held by the channel-level cache."""
    channel_id: str
    raw_payload: str
    fetched_at: float


@dataclass(frozen=True, slots=True)
class ChannelPayload:
    """Raw payload obtained for one channel during a rebuild."""
    channel_id: str
    payload: str
    from_cache: bool = False


@dataclass(slots=True)
class LoadResult:
    """Outcome of one progressive load."""
    channels: list[ChannelPayload] = field(default_factory=list)
    from_cache: int = 0
    fetched: int = 0
    failed: int = 0
    skipped: int = 0
    stopped_early: bool = False

    @property
    def total(self) -> int:
        return len(self.channels)


@dataclass(frozen=True, slots=True)
class ChannelInfo:
    """Channel metadata rendered in the listings document."""
    channel_id: str
    display_name: str
    icon_url: str | None = None


@dataclass(slots=True)
class Programme:
    """A plain (unenriched) schedule entry."""
    channel_id: str
    start: datetime
    stop: datetime
    title: str
    description: str = ""


@dataclass(frozen=True, slots=True)
class EnrichmentResult:
    """Series episode metadata resolved for one programme."""
    show_name: str
    season: int
    episode: int
    episode_title: str | None = None
    overview: str | None = None
    poster_ref: str | None = None
    still_ref: str | None = None
    show_id: int | None = None


@dataclass(slots=True, kw_only=True)
class EnrichedProgramme(Programme):
    """A programme identified as a specific series episode."""
    enrichment: EnrichmentResult

    @classmethod
    def from_programme(cls, programme: Programme, enrichment: EnrichmentResult) -> EnrichedProgramme:
        return cls(
            channel_id=programme.channel_id,
            start=programme.start,
            stop=programme.stop,
            title=programme.title,
            description=programme.description,
            enrichment=enrichment,
        )


@dataclass(frozen=True, slots=True)
class Classification:
    """Classifier verdict for one programme."""
    is_series: bool
    show_name: str = ""
    season: int | None = None
    episode: int | None = None

    @property
    def resolvable(self) -> bool:
        """Only series with both season and episode can be enriched."""
        return (
            self.is_series
            and bool(self.show_name)
            and self.season is not None
            and self.episode is not None
        )


@dataclass(frozen=True, slots=True)
class ShowMatch:
    """Best catalog match for a show name."""
    show_id: int
    name: str
    poster_ref: str | None = None


@dataclass(frozen=True, slots=True)
class EpisodeDetails:
    """Catalog record for a specific season/episode."""
    name: str | None = None
    overview: str | None = None
    still_ref: str | None = None


__all__ = [
    "ChannelDescriptor",
    "CachedChannelPayload",
    "ChannelPayload",
    "LoadResult",
    "ChannelInfo",
    "Programme",
    "EnrichmentResult",
    "EnrichedProgramme",
    "Classification",
    "ShowMatch",
    "EpisodeDetails",
]
