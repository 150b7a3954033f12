import pytest

from epg_aggregator.services.channel_cache import ChannelCache
from epg_aggregator.services.response_cache import CacheTier, ResponseCache, TierState


@pytest.fixture
def cache(clock) -> ResponseCache:
    return ResponseCache(full_ttl_seconds=1800, partial_ttl_seconds=180, clock=clock)


def store(cache: ResponseCache, document: str, obtained: int, total: int = 100):
    return cache.store(
        document,
        channels_obtained=obtained,
        channels_total=total,
        channel_count=obtained,
        programme_count=obtained * 10,
    )


def test_coverage_at_threshold_writes_full_only(cache):
    entry = store(cache, "<tv>full</tv>", 85)

    assert entry.tier is CacheTier.FULL
    assert cache.entry(CacheTier.FULL).document == "<tv>full</tv>"
    assert cache.entry(CacheTier.PARTIAL) is None


def test_coverage_below_threshold_writes_partial_only(cache):
    store(cache, "<tv>full</tv>", 90)
    entry = store(cache, "<tv>partial</tv>", 84)

    assert entry.tier is CacheTier.PARTIAL
    assert cache.entry(CacheTier.PARTIAL).document == "<tv>partial</tv>"
    assert cache.entry(CacheTier.FULL).document == "<tv>full</tv>"


def test_fresh_full_served_over_newer_partial(cache, clock):
    store(cache, "<tv>full</tv>", 100)
    clock.advance(60)
    store(cache, "<tv>partial</tv>", 10)

    assert cache.read().document == "<tv>full</tv>"


def test_partial_served_when_full_is_stale(cache, clock):
    store(cache, "<tv>full</tv>", 100)
    clock.advance(1800)
    store(cache, "<tv>partial</tv>", 10)

    assert cache.state(CacheTier.FULL) is TierState.STALE
    assert cache.read().document == "<tv>partial</tv>"


def test_expired_tiers_force_rebuild(cache, clock):
    store(cache, "<tv>partial</tv>", 10)
    clock.advance(179)
    assert cache.read() is not None

    clock.advance(1)
    assert cache.state(CacheTier.PARTIAL) is TierState.STALE
    assert cache.read() is None


def test_zero_channels_total_is_partial(cache):
    tier, coverage = cache.classify(0, 0)

    assert tier is CacheTier.PARTIAL
    assert coverage == 0.0


def test_clear_empties_both_tiers(cache):
    store(cache, "<tv>full</tv>", 100)
    store(cache, "<tv>partial</tv>", 1)

    cache.clear()

    assert cache.state(CacheTier.FULL) is TierState.EMPTY
    assert cache.state(CacheTier.PARTIAL) is TierState.EMPTY
    assert cache.read() is None


def test_snapshot_reports_each_tier(cache, clock):
    store(cache, "<tv>full</tv>", 90)
    clock.advance(12.34)

    snapshot = cache.snapshot()

    assert snapshot["full"]["state"] == "fresh"
    assert snapshot["full"]["age_seconds"] == 12.3
    assert snapshot["full"]["coverage"] == 0.9
    assert snapshot["partial"]["available"] is False


def test_channel_cache_expiry(clock):
    cache = ChannelCache(3600, clock=clock)
    cache.put("ABC.us", "<tv/>")

    clock.advance(3600)
    assert cache.get("ABC.us") == "<tv/>"

    clock.advance(1)
    assert cache.get("ABC.us") is None
    assert cache.live_count() == 0
