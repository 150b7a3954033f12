from typing import Literal
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    channel_map_path: str = "./data/channel_map.json"
    upstream_url: str = "https://epg.pw/api/epg.xml"
    upstream_user_agent: str = "Mozilla/5.0 (compatible; EPG-Aggregator/1.0)"

    # Request budget (serverless deadline is ~10s, keep well under it)
    max_execution_sec: float = 5.0
    fetch_timeout_sec: float = 4.0
    batch_size: int = 5
    channels_per_chunk: int = 15
    cache_drain_fraction: float = 0.3
    fetch_stop_fraction: float = 0.7
    extraction_stop_fraction: float = 0.85

    channel_cache_ttl_sec: int = 3600
    full_cache_ttl_sec: int = 1800
    partial_cache_ttl_sec: int = 180
    completeness_threshold: float = 0.85
    max_programmes_per_channel: int = 50

    groq_api_key: str | None = None
    groq_model: str = "llama-3.1-8b-instant"
    groq_timeout_sec: float = 8.0
    tmdb_api_key: str | None = None
    tmdb_timeout_sec: float = 4.0
    enrichment_batch_size: int = 40
    enrichment_min_remaining_fraction: float = 0.7
    enrichment_stop_fraction: float = 0.85
    description_truncate_chars: int = 200

    generator_name: str = "Progressive EPG Aggregator"
    generator_url: str = "https://github.com"
    source_label: str = "EPG.PW"
    outage_response: Literal["document", "status"] = "document"

    warmup_cron: str | None = None  # e.g. "*/20 * * * *", unset in serverless mode
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("upstream_url")
    @classmethod
    def validate_upstream_url(cls, value: str) -> str:
        """Validate upstream URL is HTTP/HTTPS."""
        if not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"Upstream URL must be HTTP/HTTPS: {value}")
        return value

    @field_validator("groq_api_key", "tmdb_api_key", "warmup_cron", mode="before")
    @classmethod
    def empty_string_as_none(cls, value):
        """Treat blank environment values as unset."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator(
        "max_execution_sec",
        "fetch_timeout_sec",
        "groq_timeout_sec",
        "tmdb_timeout_sec",
    )
    @classmethod
    def validate_positive_floats(cls, value: float, info) -> float:
        """Ensure durations are positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator(
        "batch_size",
        "channels_per_chunk",
        "channel_cache_ttl_sec",
        "full_cache_ttl_sec",
        "partial_cache_ttl_sec",
        "max_programmes_per_channel",
        "enrichment_batch_size",
        "description_truncate_chars",
    )
    @classmethod
    def validate_positive_ints(cls, value: int, info) -> int:
        """Ensure sizes and TTLs are positive integers."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator(
        "cache_drain_fraction",
        "fetch_stop_fraction",
        "extraction_stop_fraction",
        "completeness_threshold",
        "enrichment_min_remaining_fraction",
        "enrichment_stop_fraction",
    )
    @classmethod
    def validate_fractions(cls, value: float, info) -> float:
        """Ensure fractions of the budget are within (0, 1]."""
        if not 0 < value <= 1:
            raise ValueError(f"{info.field_name} must be within (0, 1]")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate logging level name."""
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @field_validator("warmup_cron")
    @classmethod
    def validate_cron_expression(cls, value: str | None) -> str | None:
        """Validate cron expression is valid."""
        if value is None:
            return value
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @model_validator(mode="after")
    def validate_budget_configuration(self):
        """Validate cross-field configuration."""
        if self.cache_drain_fraction >= self.fetch_stop_fraction:
            raise ValueError("cache_drain_fraction must be lower than fetch_stop_fraction")

        if self.fetch_stop_fraction > self.extraction_stop_fraction:
            raise ValueError("fetch_stop_fraction must not exceed extraction_stop_fraction")

        if self.channels_per_chunk < self.batch_size:
            logger.warning(
                "channels_per_chunk (%s) is smaller than batch_size (%s) - batches will be chunk sized",
                self.channels_per_chunk,
                self.batch_size,
            )

        if self.fetch_timeout_sec > self.max_execution_sec:
            logger.warning(
                "fetch_timeout_sec (%ss) exceeds max_execution_sec (%ss) - a single slow fetch can blow the budget",
                self.fetch_timeout_sec,
                self.max_execution_sec,
            )

        return self

    @property
    def enrichment_enabled(self) -> bool:
        return bool(self.groq_api_key)

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Channel Map: %s", self.channel_map_path)
        logger.info("  Upstream: %s", self.upstream_url)
        logger.info(
            "  Budget: %.1fs (cache drain %.0f%%, fetch stop %.0f%%, extraction stop %.0f%%)",
            self.max_execution_sec,
            self.cache_drain_fraction * 100,
            self.fetch_stop_fraction * 100,
            self.extraction_stop_fraction * 100,
        )
        logger.info(
            "  Fetching: batch size %s, %s channels per chunk, %.1fs per fetch",
            self.batch_size,
            self.channels_per_chunk,
            self.fetch_timeout_sec,
        )
        logger.info(
            "  Cache TTLs: channel %ss, full %ss, partial %ss",
            self.channel_cache_ttl_sec,
            self.full_cache_ttl_sec,
            self.partial_cache_ttl_sec,
        )
        logger.info("  Completeness Threshold: %.0f%%", self.completeness_threshold * 100)
        logger.info(
            "  Enrichment: %s (TMDB %s)",
            "enabled" if self.enrichment_enabled else "disabled",
            "configured" if self.tmdb_api_key else "not configured",
        )
        logger.info("  Outage Response: %s", self.outage_response)
        logger.info("  Warm-up Schedule: %s", self.warmup_cron or "disabled")


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
