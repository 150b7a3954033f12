import json

import pytest

from epg_aggregator.services.registry import ChannelRegistry


def test_null_and_blank_upstreams_are_not_fetchable():
    registry = ChannelRegistry.from_mapping({"ABC.us": "464697", "Local.us": None, "Blank.us": "  ", "NBC.us": 464698})

    assert len(registry) == 4
    assert [c.output_id for c in registry.fetchable()] == ["ABC.us", "NBC.us"]
    assert registry.fetchable()[1].upstream_id == "464698"
    assert registry.fetchable_count() == 2


def test_load_from_file(tmp_path):
    path = tmp_path / "channel_map.json"
    path.write_text(json.dumps({"ABC.us": "464697", "Local.us": None}), encoding="utf-8")

    registry = ChannelRegistry.from_file(path)

    assert [c.output_id for c in registry.channels()] == ["ABC.us", "Local.us"]
    assert registry.fetchable_count() == 1


def test_missing_file_gives_empty_registry(tmp_path):
    registry = ChannelRegistry.from_file(tmp_path / "missing.json")

    assert len(registry) == 0
    assert registry.fetchable() == ()


def test_non_object_file_rejected(tmp_path):
    path = tmp_path / "channel_map.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    with pytest.raises(ValueError):
        ChannelRegistry.from_file(path)
