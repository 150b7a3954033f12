"""
Channel Registry

Static mapping of output channel ids to upstream channel ids. Channels mapped
to null have no listings source and are never fetched.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path

from epg_aggregator.services.fetch_types import ChannelDescriptor


logger = logging.getLogger(__name__)


class ChannelRegistry:
    """Read-only, ordered collection of channel descriptors."""

    def __init__(self, descriptors: list[ChannelDescriptor]):
        self._descriptors = tuple(descriptors)
        self._fetchable = tuple(d for d in self._descriptors if d.fetchable)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str | int | None]) -> ChannelRegistry:
        descriptors = []
        for output_id, upstream_id in mapping.items():
            if upstream_id is not None:
                upstream_id = str(upstream_id).strip() or None
            descriptors.append(ChannelDescriptor(output_id=output_id, upstream_id=upstream_id))
        return cls(descriptors)

    @classmethod
    def from_file(cls, path: Path | str) -> ChannelRegistry:
        """
        Load registry from a JSON object file

        Args:
            path: Path to a JSON file of {output_id: upstream_id | null}

        Returns:
            ChannelRegistry (empty if the file does not exist)

        Raises:
            ValueError: If the file is not a JSON object
        """
        path = Path(path)
        if not path.exists():
            logger.warning("Channel map %s not found - registry is empty", path)
            return cls([])

        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)

        if not isinstance(data, dict):
            raise ValueError(f"Channel map {path} must be a JSON object")

        registry = cls.from_mapping(data)
        logger.info(
            "Loaded channel map %s: %s channels (%s with listings source)",
            path,
            len(registry),
            registry.fetchable_count(),
        )
        return registry

    def channels(self) -> tuple[ChannelDescriptor, ...]:
        return self._descriptors

    def fetchable(self) -> tuple[ChannelDescriptor, ...]:
        return self._fetchable

    def fetchable_count(self) -> int:
        return len(self._fetchable)

    def __len__(self) -> int:
        return len(self._descriptors)
