"""
Listings Service

Applies the response cache read policy and, on a miss, rebuilds the listings
document within the request budget: progressive load, extraction, optional
enrichment, serialization, then tier classification.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from epg_aggregator.exceptions import NoChannelDataAvailable
from epg_aggregator.services.budget import LoadBudget
from epg_aggregator.services.channel_cache import ChannelCache
from epg_aggregator.services.enrichment import EnrichmentPipeline
from epg_aggregator.services.fetch_types import ChannelInfo, LoadResult, Programme
from epg_aggregator.services.programme_extractor import DEFAULT_MAX_PROGRAMMES, extract_schedule
from epg_aggregator.services.progressive_loader import ProgressiveLoader
from epg_aggregator.services.registry import ChannelRegistry
from epg_aggregator.services.response_cache import CacheTier, ResponseCache, ResponseCacheEntry, TierState
from epg_aggregator.utils.logging_helpers import (
    log_cache_hit,
    log_extraction_summary,
    log_rebuild_end,
    log_rebuild_start,
)
from epg_aggregator.utils.xmltv_writer import (
    GeneratorInfo,
    format_size,
    listing_statistics,
    render_listings,
)


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ListingsResult:
    document: str
    cache_status: str  # HIT-FULL | HIT-PARTIAL | MISS-FULL | MISS-PARTIAL
    build_type: str
    channel_count: int
    programme_count: int
    channels_total: int
    cache_age_seconds: float | None = None
    generation_seconds: float | None = None

    @property
    def partial(self) -> bool:
        return self.build_type == CacheTier.PARTIAL.value

    @property
    def warning(self) -> str | None:
        if not self.partial:
            return None
        return f"Partial: {self.channel_count}/{self.channels_total} channels"


class ListingsService:
    """Read-through listings builder over the two cache layers."""

    def __init__(
        self,
        registry: ChannelRegistry,
        channel_cache: ChannelCache,
        response_cache: ResponseCache,
        loader: ProgressiveLoader,
        budget_factory: Callable[[], LoadBudget],
        *,
        enrichment: EnrichmentPipeline | None = None,
        generator: GeneratorInfo | None = None,
        max_programmes_per_channel: int = DEFAULT_MAX_PROGRAMMES,
    ) -> None:
        self.registry = registry
        self.channel_cache = channel_cache
        self.response_cache = response_cache
        self.loader = loader
        self.enrichment = enrichment
        self.generator = generator or GeneratorInfo()
        self.max_programmes_per_channel = max_programmes_per_channel
        self._budget_factory = budget_factory
        self._rebuild_lock = asyncio.Lock()

    async def get_listings(self) -> ListingsResult:
        """
        Serve the listings document

        Returns:
            Fresh full tier, else fresh partial tier, else a synchronous rebuild

        Raises:
            NoChannelDataAvailable: If a rebuild obtained no usable data
        """
        entry = self.response_cache.read()
        if entry is not None:
            return self._from_cache(entry)

        # Requests arriving during a rebuild wait for it instead of starting their own
        async with self._rebuild_lock:
            entry = self.response_cache.read()
            if entry is not None:
                return self._from_cache(entry)
            return await self._rebuild()

    async def warm(self) -> ListingsResult | None:
        """Rebuild unless the full tier is still fresh."""
        if self.response_cache.state(CacheTier.FULL) is TierState.FRESH:
            logger.info("Warm-up skipped: full cache is fresh")
            return None

        async with self._rebuild_lock:
            if self.response_cache.state(CacheTier.FULL) is TierState.FRESH:
                logger.info("Warm-up skipped: full cache was rebuilt while waiting")
                return None
            try:
                return await self._rebuild()
            except NoChannelDataAvailable as exc:
                logger.warning("Warm-up produced no data: %s", exc)
                return None

    def clear_all(self) -> None:
        """Empty both response tiers and the channel cache."""
        self.response_cache.clear()
        self.channel_cache.clear()

    def status(self) -> dict:
        return {
            "response_cache": self.response_cache.snapshot(),
            "channel_cache": {
                "entries": len(self.channel_cache),
                "live_entries": self.channel_cache.live_count(),
                "ttl_seconds": self.channel_cache.ttl_seconds,
            },
            "registry": {
                "total_channels": len(self.registry),
                "valid_channels": self.registry.fetchable_count(),
            },
            "rebuild_in_progress": self._rebuild_lock.locked(),
        }

    def _from_cache(self, entry: ResponseCacheEntry) -> ListingsResult:
        age = self.response_cache.age(entry.tier) or 0.0
        log_cache_hit(logger, entry.tier.value, age)
        return ListingsResult(
            document=entry.document,
            cache_status=f"HIT-{entry.tier.value.upper()}",
            build_type=entry.tier.value,
            channel_count=entry.channel_count,
            programme_count=entry.programme_count,
            channels_total=self.registry.fetchable_count(),
            cache_age_seconds=age,
        )

    async def _rebuild(self) -> ListingsResult:
        budget = self._budget_factory()
        channels_total = self.registry.fetchable_count()
        log_rebuild_start(logger, channels_total, budget.max_duration)

        load = await self.loader.load(self.registry.fetchable(), budget)
        if not load.channels:
            raise NoChannelDataAvailable("No EPG data available")

        channels_used, channel_info, programmes = self._extract(load, budget)
        if not programmes:
            raise NoChannelDataAvailable("No programmes extracted")

        if self.enrichment is not None:
            try:
                programmes = await self.enrichment.enrich(programmes, budget)
            except Exception as exc:
                logger.error("Enrichment aborted, serving unenriched listings: %s", exc, exc_info=True)

        document = render_listings(programmes, self.generator, channel_info)
        stats = listing_statistics(programmes)
        entry = self.response_cache.store(
            document,
            channels_obtained=channels_used,
            channels_total=channels_total,
            channel_count=stats["channels"],
            programme_count=stats["total"],
        )

        duration = budget.elapsed()
        log_rebuild_end(logger, entry.tier.value, stats, duration, format_size(len(document.encode("utf-8"))))

        return ListingsResult(
            document=document,
            cache_status=f"MISS-{entry.tier.value.upper()}",
            build_type=entry.tier.value,
            channel_count=entry.channel_count,
            programme_count=entry.programme_count,
            channels_total=channels_total,
            generation_seconds=duration,
        )

    def _extract(
        self,
        load: LoadResult,
        budget: LoadBudget,
    ) -> tuple[int, dict[str, ChannelInfo], list[Programme]]:
        channel_info: dict[str, ChannelInfo] = {}
        programmes: list[Programme] = []
        channels_used = 0

        for channel in load.channels:
            if budget.extraction_exhausted():
                logger.info(
                    "Time limit during extraction, stopping at %s programmes (%s/%s channels)",
                    len(programmes),
                    channels_used,
                    load.total,
                )
                break

            info, extracted = extract_schedule(
                channel.payload,
                channel.channel_id,
                self.max_programmes_per_channel,
            )
            channels_used += 1
            channel_info[channel.channel_id] = info
            programmes.extend(extracted)

        log_extraction_summary(logger, channels_used, len(programmes), budget.elapsed())
        return channels_used, channel_info, programmes
