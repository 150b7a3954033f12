"""
Load Budget

Cooperative time budget for a single rebuild. Stages poll the budget at fixed
checkpoints (before each batch, before each enrichment round) and stop
starting new work once their threshold is passed. Work already in flight is
never interrupted, so a rebuild can modestly overshoot max_duration.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

Clock = Callable[[], float]


@dataclass(frozen=True, slots=True)
class LoadBudget:
    started_at: float
    max_duration: float
    cache_drain_fraction: float = 0.3
    fetch_stop_fraction: float = 0.7
    extraction_stop_fraction: float = 0.85
    enrichment_min_remaining_fraction: float = 0.7
    enrichment_stop_fraction: float = 0.85
    clock: Clock = field(default=time.monotonic, repr=False, compare=False)

    @classmethod
    def start(cls, max_duration: float, *, clock: Clock = time.monotonic, **fractions: float) -> LoadBudget:
        """Create a budget whose clock starts now."""
        return cls(started_at=clock(), max_duration=max_duration, clock=clock, **fractions)

    def elapsed(self) -> float:
        return max(0.0, self.clock() - self.started_at)

    def remaining(self) -> float:
        return max(0.0, self.max_duration - self.elapsed())

    def elapsed_fraction(self) -> float:
        return self.elapsed() / self.max_duration

    def past(self, fraction: float) -> bool:
        """True once elapsed time exceeds the given fraction of max_duration."""
        return self.elapsed() > self.max_duration * fraction

    def cache_drain_exhausted(self) -> bool:
        return self.past(self.cache_drain_fraction)

    def fetch_exhausted(self) -> bool:
        return self.past(self.fetch_stop_fraction)

    def extraction_exhausted(self) -> bool:
        return self.past(self.extraction_stop_fraction)

    def enrichment_allowed(self) -> bool:
        """Enrichment only starts when most of the budget is still available."""
        return self.remaining() > self.max_duration * self.enrichment_min_remaining_fraction

    def enrichment_exhausted(self) -> bool:
        return self.past(self.enrichment_stop_fraction)
