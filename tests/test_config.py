import pytest
from pydantic import ValidationError

from epg_aggregator.config import CustomSettings


def test_defaults():
    settings = CustomSettings(_env_file=None)

    assert settings.max_execution_sec == 5.0
    assert settings.batch_size == 5
    assert settings.channels_per_chunk == 15
    assert settings.completeness_threshold == 0.85
    assert settings.full_cache_ttl_sec == 1800
    assert settings.partial_cache_ttl_sec == 180
    assert settings.outage_response == "document"
    assert not settings.enrichment_enabled


def test_blank_keys_are_unset():
    settings = CustomSettings(_env_file=None, groq_api_key="  ", warmup_cron="")

    assert settings.groq_api_key is None
    assert settings.warmup_cron is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MAX_EXECUTION_SEC", "8")
    monkeypatch.setenv("GROQ_API_KEY", "gsk_test")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = CustomSettings(_env_file=None)

    assert settings.max_execution_sec == 8.0
    assert settings.enrichment_enabled
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("overrides", [
    {"upstream_url": "ftp://epg.example"},
    {"max_execution_sec": 0},
    {"batch_size": -1},
    {"completeness_threshold": 1.5},
    {"log_level": "verbose"},
    {"warmup_cron": "every five minutes"},
    {"outage_response": "teapot"},
    {"cache_drain_fraction": 0.8, "fetch_stop_fraction": 0.7},
    {"fetch_stop_fraction": 0.9, "extraction_stop_fraction": 0.85},
])
def test_invalid_configuration_rejected(overrides):
    with pytest.raises(ValidationError):
        CustomSettings(_env_file=None, **overrides)
