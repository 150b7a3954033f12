"""Tests for the cache-first, budget-aware progressive loader."""

import pytest

from conftest import FakeFetcher, make_payload

from epg_aggregator.services.budget import LoadBudget
from epg_aggregator.services.progressive_loader import ProgressiveLoader
from epg_aggregator.services.registry import ChannelRegistry


def registry_of(count: int, with_unmapped: int = 0) -> ChannelRegistry:
    mapping = {f"CH{i}.us": str(1000 + i) for i in range(count)}
    for i in range(with_unmapped):
        mapping[f"NOEPG{i}.us"] = None
    return ChannelRegistry.from_mapping(mapping)


class TestCacheDrain:

    @pytest.mark.asyncio
    async def test_cache_hit_is_not_refetched(self, clock, channel_cache, budget):
        """A live cache entry is served without an upstream call."""
        registry = registry_of(3)
        channel_cache.put("CH1.us", make_payload("1001"))
        fetcher = FakeFetcher()
        loader = ProgressiveLoader(channel_cache, fetcher, batch_size=2, channels_per_chunk=4)

        result = await loader.load(registry.fetchable(), budget)

        assert "1001" not in fetcher.calls
        assert sorted(fetcher.calls) == ["1000", "1002"]
        assert result.from_cache == 1
        assert result.fetched == 2
        assert {c.channel_id for c in result.channels} == {"CH0.us", "CH1.us", "CH2.us"}

    @pytest.mark.asyncio
    async def test_expired_entry_is_refetched(self, clock, channel_cache, budget):
        registry = registry_of(1)
        channel_cache.put("CH0.us", "<tv>old</tv>")
        clock.advance(3601)
        fetcher = FakeFetcher()
        loader = ProgressiveLoader(channel_cache, fetcher)

        result = await loader.load(registry.fetchable(), LoadBudget.start(10.0, clock=clock))

        assert fetcher.calls == ["1000"]
        assert result.fetched == 1
        assert result.from_cache == 0

    @pytest.mark.asyncio
    async def test_drain_stop_never_refetches_cached_channels(self, clock, channel_cache):
        """Past the drain threshold, leftover cached channels are still not fetched."""
        registry = registry_of(4)
        for i in range(4):
            channel_cache.put(f"CH{i}.us", make_payload(str(1000 + i)))
        budget = LoadBudget.start(10.0, clock=clock)
        clock.advance(4.0)  # beyond the 30% drain threshold, below the 70% fetch stop
        fetcher = FakeFetcher()
        loader = ProgressiveLoader(channel_cache, fetcher, batch_size=2)

        result = await loader.load(registry.fetchable(), budget)

        assert fetcher.calls == []
        assert result.total == 4
        assert result.from_cache == 4


class TestFreshFetch:

    @pytest.mark.asyncio
    async def test_successful_fetch_is_written_to_cache(self, channel_cache, budget):
        registry = registry_of(2)
        loader = ProgressiveLoader(channel_cache, FakeFetcher())

        await loader.load(registry.fetchable(), budget)

        assert channel_cache.get("CH0.us") == make_payload("1000")
        assert channel_cache.get("CH1.us") == make_payload("1001")

    @pytest.mark.asyncio
    async def test_failures_are_dropped_and_not_cached(self, channel_cache, budget):
        registry = registry_of(5)
        fetcher = FakeFetcher(failing={"1001", "1003"})
        loader = ProgressiveLoader(channel_cache, fetcher, batch_size=2, channels_per_chunk=2)

        result = await loader.load(registry.fetchable(), budget)

        assert result.failed == 2
        assert result.fetched == 3
        assert {c.channel_id for c in result.channels} == {"CH0.us", "CH2.us", "CH4.us"}
        assert channel_cache.get("CH1.us") is None
        # attempted exactly once each
        assert sorted(fetcher.calls) == sorted(str(1000 + i) for i in range(5))

    @pytest.mark.asyncio
    async def test_output_never_exceeds_fetchable_channels(self, channel_cache, budget):
        registry = registry_of(7, with_unmapped=3)
        channel_cache.put("NOEPG0.us", make_payload("x"))
        loader = ProgressiveLoader(channel_cache, FakeFetcher(), batch_size=3, channels_per_chunk=5)

        result = await loader.load(registry.channels(), budget)

        assert result.total <= registry.fetchable_count()
        assert result.total == 7
        assert all(not c.channel_id.startswith("NOEPG") for c in result.channels)


class TestBudget:

    @pytest.mark.asyncio
    async def test_no_new_round_after_fetch_stop_threshold(self, clock, channel_cache):
        """Each call costs 1s of a 10s budget; nothing starts after 7s."""
        registry = registry_of(20)
        budget = LoadBudget.start(10.0, clock=clock, fetch_stop_fraction=0.7)
        fetcher = FakeFetcher(clock=clock, cost=1.0)
        loader = ProgressiveLoader(channel_cache, fetcher, batch_size=2, channels_per_chunk=6)

        result = await loader.load(registry.fetchable(), budget)

        assert result.stopped_early is True
        assert len(fetcher.calls) == 8
        assert max(fetcher.call_times) <= 7.0
        assert result.fetched == 8
        assert result.skipped == 12

    @pytest.mark.asyncio
    async def test_exhausted_budget_fetches_nothing(self, clock, channel_cache):
        registry = registry_of(3)
        budget = LoadBudget.start(5.0, clock=clock)
        clock.advance(4.0)
        fetcher = FakeFetcher()
        loader = ProgressiveLoader(channel_cache, fetcher)

        result = await loader.load(registry.fetchable(), budget)

        assert fetcher.calls == []
        assert result.total == 0
        assert result.skipped == 3
        assert result.stopped_early is True

    def test_budget_thresholds(self, clock):
        budget = LoadBudget.start(10.0, clock=clock)
        assert budget.enrichment_allowed()
        clock.advance(3.5)
        assert budget.cache_drain_exhausted()
        assert not budget.fetch_exhausted()
        assert not budget.enrichment_allowed()
        clock.advance(4.0)
        assert budget.fetch_exhausted()
        assert budget.remaining() == pytest.approx(2.5)
