"""
Dependency Injection Configuration

Builds the process-wide service graph once (at application startup) and hands
it to request handlers through FastAPI dependencies. The channel cache and the
response cache tiers are owned by this container: they are created here,
mutated only through the listings service, and emptied only through its
clear operation. They are not shared between separate process instances.
"""
import logging
import time
from dataclasses import dataclass
from functools import partial

import httpx
from fastapi import Request

from epg_aggregator.config import CustomSettings
from epg_aggregator.services.budget import Clock, LoadBudget
from epg_aggregator.services.channel_cache import ChannelCache
from epg_aggregator.services.classifier import GroqClassifier, GroqConfig
from epg_aggregator.services.enrichment import Classifier, EnrichmentPipeline, MetadataLookup
from epg_aggregator.services.listings_service import ListingsService
from epg_aggregator.services.metadata_client import TMDBClient
from epg_aggregator.services.progressive_loader import ProgressiveLoader
from epg_aggregator.services.registry import ChannelRegistry
from epg_aggregator.services.response_cache import ResponseCache
from epg_aggregator.services.scheduler_service import WarmupScheduler
from epg_aggregator.services.upstream_client import ScheduleClient
from epg_aggregator.utils.xmltv_writer import GeneratorInfo


logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Explicitly constructed application services."""

    settings: CustomSettings
    registry: ChannelRegistry
    channel_cache: ChannelCache
    response_cache: ResponseCache
    schedule_client: ScheduleClient
    listings: ListingsService
    scheduler: WarmupScheduler
    classifier: GroqClassifier | None = None
    metadata: TMDBClient | None = None

    async def close(self) -> None:
        """Release HTTP clients."""
        await self.schedule_client.close()
        if self.classifier is not None:
            await self.classifier.close()
        if self.metadata is not None:
            await self.metadata.close()
        logger.debug("Service container closed")


def budget_from_settings(settings: CustomSettings, clock: Clock = time.monotonic) -> LoadBudget:
    """Start a fresh rebuild budget from configuration."""
    return LoadBudget.start(
        settings.max_execution_sec,
        clock=clock,
        cache_drain_fraction=settings.cache_drain_fraction,
        fetch_stop_fraction=settings.fetch_stop_fraction,
        extraction_stop_fraction=settings.extraction_stop_fraction,
        enrichment_min_remaining_fraction=settings.enrichment_min_remaining_fraction,
        enrichment_stop_fraction=settings.enrichment_stop_fraction,
    )


def build_container(
    settings: CustomSettings,
    *,
    registry: ChannelRegistry | None = None,
    clock: Clock = time.monotonic,
    upstream_transport: httpx.AsyncBaseTransport | None = None,
    classifier: Classifier | None = None,
    metadata: MetadataLookup | None = None,
) -> ServiceContainer:
    """
    Wire the service graph

    Args:
        settings: Effective configuration
        registry: Channel registry (loaded from settings.channel_map_path if omitted)
        clock: Monotonic clock shared by caches and budgets
        upstream_transport: Optional httpx transport for the schedule client
        classifier: Classifier override (defaults to Groq when an API key is set)
        metadata: Metadata lookup override (defaults to TMDB when an API key is set)

    Returns:
        ServiceContainer
    """
    if registry is None:
        registry = ChannelRegistry.from_file(settings.channel_map_path)

    channel_cache = ChannelCache(settings.channel_cache_ttl_sec, clock=clock)
    response_cache = ResponseCache(
        full_ttl_seconds=settings.full_cache_ttl_sec,
        partial_ttl_seconds=settings.partial_cache_ttl_sec,
        completeness_threshold=settings.completeness_threshold,
        clock=clock,
    )
    schedule_client = ScheduleClient(
        settings.upstream_url,
        timeout=settings.fetch_timeout_sec,
        user_agent=settings.upstream_user_agent,
        transport=upstream_transport,
    )
    loader = ProgressiveLoader(
        channel_cache,
        schedule_client,
        batch_size=settings.batch_size,
        channels_per_chunk=settings.channels_per_chunk,
    )

    owned_classifier = None
    if classifier is None and settings.groq_api_key:
        owned_classifier = GroqClassifier(GroqConfig(
            api_key=settings.groq_api_key,
            model=settings.groq_model,
            timeout=settings.groq_timeout_sec,
        ))
        classifier = owned_classifier

    owned_metadata = None
    if metadata is None and settings.tmdb_api_key:
        owned_metadata = TMDBClient(settings.tmdb_api_key, timeout=settings.tmdb_timeout_sec)
        metadata = owned_metadata

    enrichment = None
    if classifier is not None:
        enrichment = EnrichmentPipeline(
            classifier,
            metadata,
            batch_size=settings.enrichment_batch_size,
            description_chars=settings.description_truncate_chars,
            lookup_concurrency=settings.batch_size,
        )

    listings = ListingsService(
        registry,
        channel_cache,
        response_cache,
        loader,
        partial(budget_from_settings, settings, clock),
        enrichment=enrichment,
        generator=GeneratorInfo(
            name=settings.generator_name,
            url=settings.generator_url,
            source=settings.source_label,
        ),
        max_programmes_per_channel=settings.max_programmes_per_channel,
    )

    return ServiceContainer(
        settings=settings,
        registry=registry,
        channel_cache=channel_cache,
        response_cache=response_cache,
        schedule_client=schedule_client,
        listings=listings,
        scheduler=WarmupScheduler(listings.warm, settings.warmup_cron),
        classifier=owned_classifier,
        metadata=owned_metadata,
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the application's service container."""
    return request.app.state.container
