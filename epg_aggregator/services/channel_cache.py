"""
Channel-Level Cache

In-process store of raw per-channel payloads with a fixed TTL. The store lives
as long as the process does; separate process instances of a horizontally
scaled deployment do not share it, so hits are best-effort only.
"""
import logging
import time

from epg_aggregator.services.budget import Clock
from epg_aggregator.services.fetch_types import CachedChannelPayload


logger = logging.getLogger(__name__)


class ChannelCache:
    """
    TTL-on-read cache keyed by output channel id.

    Size is bounded by the registry, so there is no eviction beyond expiry.
    Reads never refresh an entry's age.
    """

    def __init__(self, ttl_seconds: float = 3600, *, clock: Clock = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CachedChannelPayload] = {}

    def get(self, channel_id: str) -> str | None:
        """Return the cached payload, or None if absent or expired."""
        entry = self._entries.get(channel_id)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at > self.ttl_seconds:
            return None
        return entry.raw_payload

    def put(self, channel_id: str, payload: str) -> None:
        """Store a freshly fetched payload, replacing any previous entry."""
        self._entries[channel_id] = CachedChannelPayload(
            channel_id=channel_id,
            raw_payload=payload,
            fetched_at=self._clock(),
        )

    def clear(self) -> None:
        count = len(self._entries)
        self._entries.clear()
        logger.info("Channel cache cleared (%s entries dropped)", count)

    def live_count(self) -> int:
        now = self._clock()
        return sum(1 for entry in self._entries.values() if now - entry.fetched_at <= self.ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)
