"""
Progressive Loader

Obtains as many channel payloads as fit in the request budget: live cache
entries first, then fresh fetches in bounded-concurrency batches, refusing to
start a new batch once the fetch threshold of the budget has passed.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from epg_aggregator.exceptions import UpstreamError
from epg_aggregator.services.budget import LoadBudget
from epg_aggregator.services.channel_cache import ChannelCache
from epg_aggregator.services.fetch_types import ChannelDescriptor, ChannelPayload, LoadResult


logger = logging.getLogger(__name__)


class ScheduleFetcher(Protocol):
    async def fetch_schedule(self, upstream_id: str) -> str: ...


class ProgressiveLoader:
    """Cache-first, budget-aware channel loader."""

    def __init__(
        self,
        cache: ChannelCache,
        fetcher: ScheduleFetcher,
        *,
        batch_size: int = 5,
        channels_per_chunk: int = 15,
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.batch_size = max(1, batch_size)
        self.channels_per_chunk = max(1, channels_per_chunk)

    async def load(self, channels: Sequence[ChannelDescriptor], budget: LoadBudget) -> LoadResult:
        """
        Load channel payloads within the budget

        Args:
            channels: Registry channels; entries without an upstream id are ignored
            budget: Budget for the current rebuild

        Returns:
            LoadResult with one payload per channel obtained, in no particular order
        """
        fetchable = [channel for channel in channels if channel.fetchable]
        result = LoadResult()
        logger.info(
            "Loading %s channels (budget %.1fs)",
            len(fetchable),
            budget.max_duration,
        )

        pending = self._drain_cache(fetchable, budget, result)
        logger.info(
            "Loaded %s channels from cache (%.2fs elapsed)",
            result.from_cache,
            budget.elapsed(),
        )

        await self._fetch_remaining(pending, budget, result)

        logger.info(
            "Final: %s channels (%s cached, %s fresh, %s failed, %s skipped) in %.2fs",
            result.total,
            result.from_cache,
            result.fetched,
            result.failed,
            result.skipped,
            budget.elapsed(),
        )
        return result

    def _drain_cache(
        self,
        channels: list[ChannelDescriptor],
        budget: LoadBudget,
        result: LoadResult,
    ) -> list[ChannelDescriptor]:
        pending: list[ChannelDescriptor] = []

        for index, channel in enumerate(channels):
            payload = self.cache.get(channel.output_id)
            if payload is None:
                pending.append(channel)
                continue

            result.channels.append(ChannelPayload(channel.output_id, payload, from_cache=True))
            result.from_cache += 1

            if budget.cache_drain_exhausted():
                # Leftovers still get a cache probe before any network call
                leftovers = channels[index + 1:]
                logger.info(
                    "Cache drain stopped at %.0f%% of budget with %s channels unchecked",
                    budget.elapsed_fraction() * 100,
                    len(leftovers),
                )
                pending.extend(leftovers)
                break

        return pending

    async def _fetch_remaining(
        self,
        channels: list[ChannelDescriptor],
        budget: LoadBudget,
        result: LoadResult,
    ) -> None:
        attempted = 0
        total_chunks = (len(channels) + self.channels_per_chunk - 1) // self.channels_per_chunk

        for chunk_start in range(0, len(channels), self.channels_per_chunk):
            if result.stopped_early:
                break

            chunk = channels[chunk_start:chunk_start + self.channels_per_chunk]
            chunk_number = chunk_start // self.channels_per_chunk + 1
            fetched_before = result.fetched

            for batch_start in range(0, len(chunk), self.batch_size):
                if budget.fetch_exhausted():
                    logger.info(
                        "Reached %.0f%% fetch limit (%.2fs), stopping with %s channels",
                        budget.fetch_stop_fraction * 100,
                        budget.elapsed(),
                        result.total,
                    )
                    result.stopped_early = True
                    break

                batch = chunk[batch_start:batch_start + self.batch_size]
                attempted += len(batch)
                outcomes = await asyncio.gather(*(self._obtain(channel) for channel in batch))

                for outcome in outcomes:
                    if outcome is None:
                        result.failed += 1
                        continue
                    result.channels.append(outcome)
                    if outcome.from_cache:
                        result.from_cache += 1
                    else:
                        result.fetched += 1

            logger.info(
                "Chunk %s/%s: %s new channels (%s total, %.2fs elapsed)",
                chunk_number,
                total_chunks,
                result.fetched - fetched_before,
                result.total,
                budget.elapsed(),
            )

        result.skipped = len(channels) - attempted

    async def _obtain(self, channel: ChannelDescriptor) -> ChannelPayload | None:
        cached = self.cache.get(channel.output_id)
        if cached is not None:
            return ChannelPayload(channel.output_id, cached, from_cache=True)

        try:
            payload = await self.fetcher.fetch_schedule(channel.upstream_id)
        except UpstreamError as exc:
            logger.debug("Dropping %s: %s", channel.output_id, exc)
            return None
        except Exception as exc:
            logger.error(
                "Unexpected error fetching %s: %s",
                channel.output_id,
                exc,
                exc_info=True,
            )
            return None

        self.cache.put(channel.output_id, payload)
        return ChannelPayload(channel.output_id, payload)
