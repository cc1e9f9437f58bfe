from __future__ import annotations

from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ingest_core.circuit_breaker import CircuitBreakerConfig
from ingest_core.logging import get_log_level_value


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class IngestSettings(BaseSettings):
    """Settings for the external-source ingestion runtime."""

    model_config = prefixed_settings_config("INGEST_")

    log_level: str = "INFO"
    http_timeout_seconds: float = 30.0
    user_agent: str = "ingest-core/0.1"
    fetch_max_attempts: int = 3
    breaker_failure_threshold: int = 5
    breaker_reset_timeout_seconds: float = 60.0
    delay_between_sources_seconds: float = 0.0
    celestrak_request_interval_seconds: float = 2.0

    nasa_api_key: str = "DEMO_KEY"
    open_notify_base_url: str = "http://api.open-notify.org"
    nasa_neows_base_url: str = "https://api.nasa.gov/neo/rest/v1"
    celestrak_base_url: str = "https://celestrak.org/NORAD/elements"
    usaspending_base_url: str = "https://api.usaspending.gov/api/v2"
    patentsview_base_url: str = "https://api.patentsview.org"
    wheretheiss_base_url: str = "https://api.wheretheiss.at/v1"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().upper()
            get_log_level_value(normalized)
            return normalized
        return value

    @field_validator(
        "open_notify_base_url",
        "nasa_neows_base_url",
        "celestrak_base_url",
        "usaspending_base_url",
        "patentsview_base_url",
        "wheretheiss_base_url",
        mode="before",
    )
    @classmethod
    def _normalize_base_url(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @model_validator(mode="after")
    def _validate_ingest_settings(self) -> IngestSettings:
        if self.http_timeout_seconds <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        if self.fetch_max_attempts < 1:
            raise ValueError("fetch_max_attempts must be >= 1")
        if self.breaker_failure_threshold < 1:
            raise ValueError("breaker_failure_threshold must be >= 1")
        if self.breaker_reset_timeout_seconds <= 0:
            raise ValueError("breaker_reset_timeout_seconds must be > 0")
        if self.delay_between_sources_seconds < 0:
            raise ValueError("delay_between_sources_seconds must be >= 0")
        if self.celestrak_request_interval_seconds < 0:
            raise ValueError("celestrak_request_interval_seconds must be >= 0")
        return self

    def breaker_defaults(self) -> CircuitBreakerConfig:
        """Build the registry-wide default breaker configuration."""
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            reset_timeout=self.breaker_reset_timeout_seconds,
        )

    def http_headers(self) -> dict[str, str]:
        """Build default headers sent with every outbound request."""
        return {"User-Agent": self.user_agent}
