"""Shared fixtures: a controllable clock, schedule payloads and fake collaborators."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from epg_aggregator.exceptions import UpstreamStatusError
from epg_aggregator.services.budget import LoadBudget
from epg_aggregator.services.channel_cache import ChannelCache
from epg_aggregator.services.fetch_types import Programme


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_payload(
    channel_id: str = "464697",
    display_name: str | None = "ABC",
    programmes: list[tuple[str, str, str | None, str | None]] | None = None,
) -> str:
    """Build a single-channel XMLTV payload like the upstream returns."""
    if programmes is None:
        programmes = [
            ("20260129000000 +0000", "20260129010000 +0000", "Morning Show", "Wake up"),
            ("20260129010000 +0000", "20260129020000 +0000", "Breaking Bad", "Walter starts cooking"),
        ]

    parts = ['<?xml version="1.0" encoding="UTF-8"?>', '<tv generator-info-name="upstream">']
    parts.append(f'  <channel id="{channel_id}">')
    if display_name:
        parts.append(f"    <display-name>{display_name}</display-name>")
    parts.append("  </channel>")
    for start, stop, title, desc in programmes:
        parts.append(f'  <programme start="{start}" stop="{stop}" channel="{channel_id}">')
        if title is not None:
            parts.append(f"    <title>{title}</title>")
        if desc is not None:
            parts.append(f"    <desc>{desc}</desc>")
        parts.append("  </programme>")
    parts.append("</tv>")
    return "\n".join(parts)


class FakeFetcher:
    """Schedule fetcher that records calls and optionally consumes clock time."""

    def __init__(self, clock: FakeClock | None = None, cost: float = 0.0, failing: set[str] | None = None):
        self.clock = clock
        self.cost = cost
        self.failing = failing or set()
        self.calls: list[str] = []
        self.call_times: list[float] = []

    async def fetch_schedule(self, upstream_id: str) -> str:
        self.calls.append(upstream_id)
        if self.clock is not None:
            self.call_times.append(self.clock())
            self.clock.advance(self.cost)
        await asyncio.sleep(0)
        if upstream_id in self.failing:
            raise UpstreamStatusError(upstream_id, "HTTP 404", status_code=404)
        return make_payload(upstream_id)


def programme(title: str, description: str = "", channel_id: str = "ABC.us", start: datetime | None = None) -> Programme:
    start = start or datetime(2026, 1, 29, tzinfo=timezone.utc)
    return Programme(
        channel_id=channel_id,
        start=start,
        stop=start + timedelta(minutes=60),
        title=title,
        description=description,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def channel_cache(clock) -> ChannelCache:
    return ChannelCache(3600, clock=clock)


@pytest.fixture
def budget(clock) -> LoadBudget:
    return LoadBudget.start(10.0, clock=clock)
