# src/config/settings.py - v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for batch sizes, gateway endpoints, cache backend
and logging. Every key can be overridden through the environment
(e.g. ``INITIAL_BATCH=12``) or passed to ``load_settings()``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


DEFAULT_GATEWAYS = (
    "https://w3s.link,https://ipfs.io,https://cf-ipfs.com,https://gateway.ipfs.io"
)


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Pagination / prefetch ===
    initial_batch: int = 24
    background_batch: int = 48
    chunk_size: int = 20
    max_concurrent_chunks: int = 5
    display_limit: int = 24
    prefetch_range_delay_s: float = 1.0

    # === Gateways ===
    gateway_urls: str = DEFAULT_GATEWAYS
    gateway_timeout_s: float = 10.0
    rate_limit_interval_ms: int = 100
    retry_max_attempts: int = 3
    retry_base_delay_s: float = 1.0
    content_cache_ttl_s: float = 300.0

    # === Cache ===
    cache_backend: Literal["memory", "json", "sqlite", "redis"] = "json"
    cache_root: Path = Path("~/.nftmeta/cache")
    cache_redis_url: str = ""
    cache_retention_days: int = 365

    # === Upstream collection service ===
    collection_api_network: Literal["mainnet", "testnet-10", "testnet-11"] = (
        "testnet-10"
    )
    collection_api_base_url: str = ""
    collection_api_timeout_s: float = 15.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "initial_batch",
        "background_batch",
        "chunk_size",
        "max_concurrent_chunks",
        "display_limit",
        "retry_max_attempts",
        "cache_retention_days",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("gateway_timeout_s", "rate_limit_interval_ms", "retry_base_delay_s")
    @classmethod
    def validate_non_negative(cls, v: float, info) -> float:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.chunk_size > self.background_batch:
            errors.append("CHUNK_SIZE must be <= BACKGROUND_BATCH")

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_BACKEND=redis requires CACHE_REDIS_URL")

        if not self.gateway_urls_list:
            errors.append("GATEWAY_URLS must list at least one gateway")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def gateway_urls_list(self) -> list[str]:
        """Parse comma-separated gateway base URLs, preserving order."""
        return [g.strip().rstrip("/") for g in self.gateway_urls.split(",") if g.strip()]

    @property
    def cache_retention_s(self) -> float:
        return self.cache_retention_days * 24 * 60 * 60

    @property
    def rate_limit_interval_s(self) -> float:
        return self.rate_limit_interval_ms / 1000.0

    @property
    def collection_api_url(self) -> str:
        """Base URL of the upstream collection service for the configured network."""
        if self.collection_api_base_url:
            return self.collection_api_base_url.rstrip("/")
        network = self.collection_api_network
        return f"https://{network}.krc721.stream/api/v1/krc721/{network}"


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or one-off runs).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
