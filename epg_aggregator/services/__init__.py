"""
Services package for EPG Aggregator

This package contains the listings pipeline: registry, caches, loader,
extraction, enrichment and orchestration.
"""
from epg_aggregator.services.budget import LoadBudget
from epg_aggregator.services.channel_cache import ChannelCache
from epg_aggregator.services.fetch_types import (
    ChannelDescriptor,
    ChannelPayload,
    EnrichedProgramme,
    EnrichmentResult,
    Programme,
)
from epg_aggregator.services.registry import ChannelRegistry

__all__ = [
    'LoadBudget',
    'ChannelCache',
    'ChannelDescriptor',
    'ChannelPayload',
    'EnrichedProgramme',
    'EnrichmentResult',
    'Programme',
    'ChannelRegistry',
]
