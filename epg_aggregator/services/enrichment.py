"""
Enrichment Pipeline

Best-effort second pass that identifies programmes as series episodes and
attaches catalog metadata. Runs only while the rebuild budget allows it and
never drops a record: anything that cannot be resolved stays plain.
"""
from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from epg_aggregator.exceptions import ClassifierFailure, ClassifierShapeMismatch, MetadataLookupFailure
from epg_aggregator.services.budget import LoadBudget
from epg_aggregator.services.classifier import ClassifierItem
from epg_aggregator.services.fetch_types import (
    Classification,
    EnrichedProgramme,
    EnrichmentResult,
    EpisodeDetails,
    Programme,
    ShowMatch,
)
from epg_aggregator.services.programme_extractor import UNKNOWN_TITLE


logger = logging.getLogger(__name__)

NON_SERIES_PATTERN = re.compile(
    r"\b("
    r"news|noticias|noticiero|headlines|weather|"
    r"sports?|football|soccer|basketball|baseball|hockey|tennis|golf|"
    r"nba|nfl|mlb|nhl|ufc|wwe|boxing|racing|formula 1|"
    r"live|en vivo|highlights|pre-?game|post-?game|"
    r"talk show|tonight show|late show|late night|the view|morning|"
    r"paid programming|infomercial|teleshopping|sign off|off air|"
    r"movie|film"
    r")\b",
    re.IGNORECASE,
)


class Classifier(Protocol):
    async def classify(self, items: Sequence[ClassifierItem]) -> list[Classification]: ...


class MetadataLookup(Protocol):
    async def search_show(self, name: str) -> ShowMatch | None: ...

    async def get_episode(self, show_id: int, season: int, episode: int) -> EpisodeDetails: ...


@dataclass(slots=True)
class EnrichmentStats:
    candidates: int = 0
    batches_run: int = 0
    batches_failed: int = 0
    batches_abandoned: int = 0
    enriched: int = 0


def is_series_candidate(programme: Programme) -> bool:
    """Cheap pre-filter before spending a classifier call on a title."""
    title = programme.title.strip()
    if not title or title == UNKNOWN_TITLE:
        return False
    return NON_SERIES_PATTERN.search(title) is None


class EnrichmentPipeline:
    """Classifier + catalog enrichment bounded by the rebuild budget."""

    def __init__(
        self,
        classifier: Classifier,
        metadata: MetadataLookup | None = None,
        *,
        batch_size: int = 40,
        description_chars: int = 200,
        lookup_concurrency: int = 5,
    ) -> None:
        self.classifier = classifier
        self.metadata = metadata
        self.batch_size = max(1, batch_size)
        self.description_chars = description_chars
        self._lookup_concurrency = max(1, lookup_concurrency)

    async def enrich(self, programmes: Sequence[Programme], budget: LoadBudget) -> list[Programme]:
        """
        Enrich as many programmes as the budget allows

        Args:
            programmes: Extracted programme records
            budget: Budget of the current rebuild

        Returns:
            Same records in the same order, resolved ones replaced by EnrichedProgramme
        """
        records = list(programmes)
        stats = EnrichmentStats()

        if not budget.enrichment_allowed():
            logger.info(
                "Skipping enrichment: %.2fs remaining of %.1fs budget",
                budget.remaining(),
                budget.max_duration,
            )
            return records

        candidates = [index for index, record in enumerate(records) if is_series_candidate(record)]
        stats.candidates = len(candidates)
        logger.info("Enrichment: %s of %s programmes are series candidates", len(candidates), len(records))

        semaphore = asyncio.Semaphore(self._lookup_concurrency)
        show_lookups: dict[str, asyncio.Task] = {}

        try:
            for batch_start in range(0, len(candidates), self.batch_size):
                if budget.enrichment_exhausted():
                    stats.batches_abandoned = (
                        (len(candidates) - batch_start + self.batch_size - 1) // self.batch_size
                    )
                    logger.info(
                        "Enrichment stopped at %.0f%% of budget, %s batches abandoned",
                        budget.elapsed_fraction() * 100,
                        stats.batches_abandoned,
                    )
                    break

                batch = candidates[batch_start:batch_start + self.batch_size]
                stats.batches_run += 1
                try:
                    classifications = await asyncio.wait_for(
                        self.classifier.classify(
                            [self._classifier_item(records[index]) for index in batch]
                        ),
                        timeout=budget.remaining(),
                    )
                except asyncio.TimeoutError:
                    stats.batches_failed += 1
                    logger.warning("Classifier did not answer within the remaining budget, batch left unenriched")
                    continue
                except ClassifierShapeMismatch as exc:
                    stats.batches_failed += 1
                    logger.warning("Classifier answer misaligned, batch left unenriched: %s", exc)
                    continue
                except ClassifierFailure as exc:
                    stats.batches_failed += 1
                    logger.warning("Classifier failed, batch left unenriched: %s", exc)
                    continue
                except Exception as exc:
                    stats.batches_failed += 1
                    logger.error("Unexpected classifier error, batch left unenriched: %s", exc, exc_info=True)
                    continue

                resolvable = [
                    (index, classification)
                    for index, classification in zip(batch, classifications)
                    if classification.resolvable
                ]
                if not resolvable:
                    continue

                tasks = [
                    asyncio.ensure_future(
                        self._resolve(records[index], classification, budget, semaphore, show_lookups)
                    )
                    for index, classification in resolvable
                ]
                done, pending = await asyncio.wait(tasks, timeout=budget.remaining())
                if pending:
                    logger.info("Enrichment deadline reached, %s lookups cancelled", len(pending))
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)

                for (index, _), task in zip(resolvable, tasks):
                    if task not in done or task.cancelled():
                        continue
                    enrichment = task.result()
                    if enrichment is not None:
                        records[index] = EnrichedProgramme.from_programme(records[index], enrichment)
                        stats.enriched += 1
        finally:
            for task in show_lookups.values():
                if not task.done():
                    task.cancel()

        logger.info(
            "Enrichment complete: %s enriched (%s batches run, %s failed, %s abandoned) at %.2fs",
            stats.enriched,
            stats.batches_run,
            stats.batches_failed,
            stats.batches_abandoned,
            budget.elapsed(),
        )
        return records

    def _classifier_item(self, programme: Programme) -> ClassifierItem:
        return ClassifierItem(
            title=programme.title,
            description=programme.description[:self.description_chars],
        )

    async def _resolve(
        self,
        programme: Programme,
        classification: Classification,
        budget: LoadBudget,
        semaphore: asyncio.Semaphore,
        show_lookups: dict[str, asyncio.Task],
    ) -> EnrichmentResult | None:
        if self.metadata is None:
            return EnrichmentResult(
                show_name=classification.show_name,
                season=classification.season,
                episode=classification.episode,
            )

        if budget.enrichment_exhausted():
            return None

        key = classification.show_name.casefold()
        if key not in show_lookups:
            show_lookups[key] = asyncio.ensure_future(
                self._search_show(classification.show_name, budget, semaphore)
            )

        try:
            show = await asyncio.shield(show_lookups[key])
            if show is None:
                return None
            async with semaphore:
                # Each catalog call is gated on the budget once a slot is free
                if budget.enrichment_exhausted():
                    return None
                details = await self.metadata.get_episode(
                    show.show_id,
                    classification.season,
                    classification.episode,
                )
        except MetadataLookupFailure as exc:
            logger.debug("Metadata lookup failed for %r: %s", programme.title, exc)
            return None
        except Exception as exc:
            logger.warning("Unexpected error enriching %r: %s", programme.title, exc, exc_info=True)
            return None

        return EnrichmentResult(
            show_name=show.name or classification.show_name,
            season=classification.season,
            episode=classification.episode,
            episode_title=details.name,
            overview=details.overview,
            poster_ref=show.poster_ref,
            still_ref=details.still_ref,
            show_id=show.show_id,
        )

    async def _search_show(
        self,
        name: str,
        budget: LoadBudget,
        semaphore: asyncio.Semaphore,
    ) -> ShowMatch | None:
        async with semaphore:
            if budget.enrichment_exhausted():
                return None
            return await self.metadata.search_show(name)
