"""
Multi-Tier Response Cache

Two slots of rendered listings documents. The full slot holds a document
built with near-complete channel coverage and lives long; the partial slot
holds anything below the completeness threshold and lives briefly. Entries
are always replaced wholesale. Like the channel cache, the slots are
per-process state.
"""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass

from epg_aggregator.services.budget import Clock


logger = logging.getLogger(__name__)


class CacheTier(str, enum.Enum):
    FULL = "full"
    PARTIAL = "partial"


class TierState(str, enum.Enum):
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class ResponseCacheEntry:
    document: str
    built_at: float
    channel_count: int
    programme_count: int
    coverage: float
    tier: CacheTier


class ResponseCache:
    """Full/partial document cache with the read and write policies."""

    def __init__(
        self,
        *,
        full_ttl_seconds: float = 1800,
        partial_ttl_seconds: float = 180,
        completeness_threshold: float = 0.85,
        clock: Clock = time.monotonic,
    ):
        self.ttl_seconds = {
            CacheTier.FULL: full_ttl_seconds,
            CacheTier.PARTIAL: partial_ttl_seconds,
        }
        self.completeness_threshold = completeness_threshold
        self._clock = clock
        self._slots: dict[CacheTier, ResponseCacheEntry | None] = {
            CacheTier.FULL: None,
            CacheTier.PARTIAL: None,
        }

    def state(self, tier: CacheTier) -> TierState:
        entry = self._slots[tier]
        if entry is None:
            return TierState.EMPTY
        if self.age(tier) < self.ttl_seconds[tier]:
            return TierState.FRESH
        return TierState.STALE

    def age(self, tier: CacheTier) -> float | None:
        entry = self._slots[tier]
        if entry is None:
            return None
        return max(0.0, self._clock() - entry.built_at)

    def entry(self, tier: CacheTier) -> ResponseCacheEntry | None:
        return self._slots[tier]

    def read(self) -> ResponseCacheEntry | None:
        """Fresh full entry, else fresh partial entry, else None (rebuild needed)."""
        for tier in (CacheTier.FULL, CacheTier.PARTIAL):
            if self.state(tier) is TierState.FRESH:
                return self._slots[tier]
        return None

    def classify(self, channels_obtained: int, channels_total: int) -> tuple[CacheTier, float]:
        """Grade a rebuild by its coverage ratio."""
        coverage = channels_obtained / channels_total if channels_total else 0.0
        tier = CacheTier.FULL if coverage >= self.completeness_threshold else CacheTier.PARTIAL
        return tier, coverage

    def store(
        self,
        document: str,
        *,
        channels_obtained: int,
        channels_total: int,
        channel_count: int,
        programme_count: int,
    ) -> ResponseCacheEntry:
        """
        Write a rebuilt document into the tier its coverage earns

        Only the selected tier is touched: a partial rebuild never overwrites
        the full slot.
        """
        tier, coverage = self.classify(channels_obtained, channels_total)
        entry = ResponseCacheEntry(
            document=document,
            built_at=self._clock(),
            channel_count=channel_count,
            programme_count=programme_count,
            coverage=coverage,
            tier=tier,
        )
        self._slots[tier] = entry
        logger.info(
            "%s cache built: %s/%s channels (%.0f%% coverage), %s programmes",
            tier.value.upper(),
            channels_obtained,
            channels_total,
            coverage * 100,
            programme_count,
        )
        return entry

    def clear(self) -> None:
        for tier in self._slots:
            self._slots[tier] = None
        logger.info("Response cache cleared (full and partial tiers)")

    def snapshot(self) -> dict:
        """Per-tier diagnostics."""
        snapshot = {}
        for tier in (CacheTier.FULL, CacheTier.PARTIAL):
            entry = self._slots[tier]
            age = self.age(tier)
            snapshot[tier.value] = {
                "state": self.state(tier).value,
                "available": entry is not None,
                "age_seconds": round(age, 1) if age is not None else None,
                "ttl_seconds": self.ttl_seconds[tier],
                "channels": entry.channel_count if entry else 0,
                "programmes": entry.programme_count if entry else 0,
                "coverage": round(entry.coverage, 3) if entry else None,
            }
        return snapshot
