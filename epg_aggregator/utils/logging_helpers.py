"""
Structured logging helpers for consistent log formatting.

Provides utilities for structured, clean logging of rebuild stages.
"""
import logging
from datetime import datetime, timezone


def log_rebuild_start(logger: logging.Logger, total_channels: int, budget_seconds: float) -> None:
    """
    Log the start of a listings rebuild.

    Args:
        logger: Logger instance
        total_channels: Channels with a listings source in the registry
        budget_seconds: Wall-clock budget for this rebuild
    """
    logger.info(
        f"Listings rebuild started at {datetime.now(timezone.utc).isoformat()} "
        f"({total_channels} channels, {budget_seconds:.1f}s budget)"
    )


def log_cache_hit(logger: logging.Logger, tier: str, age_seconds: float) -> None:
    """Log a response served from one of the cache tiers."""
    logger.info(f"Serving {tier.upper()} cache ({age_seconds:.0f}s old)")


def log_extraction_summary(
    logger: logging.Logger,
    channels_count: int,
    programmes_count: int,
    elapsed_seconds: float
) -> None:
    """
    Log extraction summary.

    Args:
        logger: Logger instance
        channels_count: Number of channels extracted
        programmes_count: Number of programmes extracted
        elapsed_seconds: Budget time elapsed so far
    """
    logger.info(
        f"Extracted {programmes_count} programmes from {channels_count} channels "
        f"({elapsed_seconds:.2f}s elapsed)"
    )


def log_rebuild_end(
    logger: logging.Logger,
    build_type: str,
    stats: dict,
    duration_seconds: float,
    size: str
) -> None:
    """
    Log rebuild completion.

    Args:
        logger: Logger instance
        build_type: 'full' or 'partial'
        stats: Output of listing_statistics()
        duration_seconds: Total generation time
        size: Human readable document size
    """
    logger.info(
        f"Listings rebuild completed ({build_type}): {stats['channels']} channels, "
        f"{stats['total']} programmes, {stats['enriched']} enriched, {duration_seconds:.2f}s, {size}"
    )
