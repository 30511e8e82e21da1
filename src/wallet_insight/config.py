"""Configuration management service with Pydantic Settings.

This module provides centralized configuration management for the
Wallet Insight analysis service, loading and validating environment
variables at startup.
"""

from __future__ import annotations

import logging
import math
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


class DatabaseSettings(BaseSettings):
    """Database connection settings for the analysis history store."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description="PostgreSQL connection string (history persistence is off when unset)",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate database URL format."""
        if v is None:
            return v
        if not v.startswith(("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must be a PostgreSQL or aiosqlite connection string")
        return v

    @property
    def enabled(self) -> bool:
        return self.url is not None


class RedisSettings(BaseSettings):
    """Redis connection settings for the price and result caches."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    url: str | None = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis connection string (Redis caching is off when unset)",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str | None) -> str | None:
        """Validate Redis URL format."""
        if v is None:
            return v
        if not v.startswith(("redis://", "rediss://")):
            raise ValueError("REDIS_URL must start with redis:// or rediss://")
        return v

    @property
    def enabled(self) -> bool:
        return self.url is not None


class ChainSettings(BaseSettings):
    """Chain data fetch settings."""

    model_config = SettingsConfigDict(env_prefix="CHAIN_", extra="ignore")

    fetch_max_attempts: int = Field(
        default=3,
        alias="CHAIN_FETCH_MAX_ATTEMPTS",
        ge=1,
        le=20,
        description="Attempts per chain data fetch before giving up",
    )
    fetch_retry_delay_seconds: float = Field(
        default=0.5,
        alias="CHAIN_FETCH_RETRY_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Base delay for exponential backoff between fetch attempts",
    )


class AnalysisSettings(BaseSettings):
    """Portfolio analysis settings."""

    model_config = SettingsConfigDict(env_prefix="ANALYSIS_", extra="ignore")

    windows_hours: str = Field(
        default="24,168",
        alias="ANALYSIS_WINDOWS_HOURS",
        description="Trailing metric windows in hours (comma-separated)",
    )
    freshness_tolerance_slots: int = Field(
        default=0,
        alias="ANALYSIS_FRESHNESS_TOLERANCE_SLOTS",
        ge=0,
        le=10_000_000,
        description="Default slots a cached result may lag the newest known event",
    )
    snapshot_batch_size: int = Field(
        default=1,
        alias="ANALYSIS_SNAPSHOT_BATCH_SIZE",
        ge=1,
        le=100_000,
        description="Events folded per emitted portfolio snapshot",
    )
    slot_duration_seconds: float = Field(
        default=0.4,
        alias="ANALYSIS_SLOT_DURATION_SECONDS",
        gt=0.0,
        le=60.0,
        description="Nominal slot duration used to convert windows to slots",
    )
    synthesize_opening_balances: bool = Field(
        default=False,
        alias="ANALYSIS_SYNTHESIZE_OPENING_BALANCES",
        description="Repair missing prior credits with zero-cost opening balances instead of failing",
    )
    result_cache_ttl_seconds: int = Field(
        default=3600,
        alias="ANALYSIS_RESULT_CACHE_TTL_SECONDS",
        ge=1,
        le=30 * 24 * 3600,
        description="Redis TTL for written-through analysis results",
    )
    cache_max_wallets: int = Field(
        default=10_000,
        alias="ANALYSIS_CACHE_MAX_WALLETS",
        ge=1,
        le=10_000_000,
        description="Wallets kept in the in-memory analysis cache before LRU eviction",
    )

    @field_validator("windows_hours")
    @classmethod
    def _validate_windows(cls, v: str) -> str:
        parts = [p.strip() for p in v.split(",") if p.strip()]
        if not parts:
            raise ValueError("ANALYSIS_WINDOWS_HOURS must name at least one window")
        seen: set[int] = set()
        for part in parts:
            try:
                hours = float(part)
            except ValueError as e:
                raise ValueError(f"Invalid window in ANALYSIS_WINDOWS_HOURS: {part!r}") from e
            if not math.isfinite(hours) or hours <= 0:
                raise ValueError("ANALYSIS_WINDOWS_HOURS entries must be > 0")
            seconds = round(hours * 3600)
            if seconds < 1:
                raise ValueError(f"Window shorter than one second: {part!r}")
            # Windows are labelled to the second, so labels must stay distinct.
            if seconds in seen:
                raise ValueError(f"Duplicate window in ANALYSIS_WINDOWS_HOURS: {part!r}")
            seen.add(seconds)
        return ",".join(parts)

    @property
    def windows(self) -> tuple[timedelta, ...]:
        """Configured windows, shortest first."""
        seconds = {round(float(p) * 3600) for p in self.windows_hours.split(",")}
        return tuple(timedelta(seconds=s) for s in sorted(seconds))


class ScoringSettings(BaseSettings):
    """Scoring capability settings."""

    model_config = SettingsConfigDict(env_prefix="SCORING_", extra="ignore")

    timeout_seconds: float = Field(
        default=5.0,
        alias="SCORING_TIMEOUT_SECONDS",
        gt=0.0,
        le=300.0,
        description="Deadline for a single scoring attempt",
    )
    max_attempts: int = Field(
        default=3,
        alias="SCORING_MAX_ATTEMPTS",
        ge=1,
        le=20,
        description="Attempts before falling back to the heuristic score",
    )
    retry_base_delay_seconds: float = Field(
        default=0.5,
        alias="SCORING_RETRY_BASE_DELAY_SECONDS",
        ge=0.0,
        le=60.0,
        description="Base delay for exponential backoff between scoring attempts",
    )
    model_artifact_path: Path | None = Field(
        default=None,
        alias="SCORING_MODEL_ARTIFACT_PATH",
        description="joblib classifier artifact used by ModelArtifactScorer",
    )
    model_schema_json: str | None = Field(
        default=None,
        alias="SCORING_MODEL_SCHEMA_JSON",
        description='JSON schema for the artifact, e.g. {"feature_columns": [...]}',
    )

    @property
    def model_enabled(self) -> bool:
        return self.model_artifact_path is not None and self.model_schema_json is not None


class Settings(BaseSettings):
    """Main application settings.

    Loads configuration from environment variables with support for
    .env files via python-dotenv.

    Example:
        ```python
        from wallet_insight.config import get_settings

        settings = get_settings()
        print(settings.analysis.windows)
        print(settings.log_level)
        ```
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
    )

    # Nested configuration groups
    #
    # NOTE: Each nested BaseSettings must be given the same env_file, otherwise it
    # will only read from the process environment (and ignore `.env`).
    database: DatabaseSettings = Field(
        default_factory=lambda: DatabaseSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    redis: RedisSettings = Field(
        default_factory=lambda: RedisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    chain: ChainSettings = Field(
        default_factory=lambda: ChainSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    analysis: AnalysisSettings = Field(
        default_factory=lambda: AnalysisSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )
    scoring: ScoringSettings = Field(
        default_factory=lambda: ScoringSettings(
            _env_file=_ENV_FILE,
            _env_file_encoding=_ENV_FILE_ENCODING,
        )
    )

    # Application settings
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level",
    )

    def get_logging_level(self) -> int:
        """Get the numeric logging level."""
        level: int = getattr(logging, self.log_level)
        return level

    def redacted_summary(self) -> dict[str, str | dict[str, str]]:
        """Get a summary of settings with secrets redacted.

        Returns:
            Dictionary of settings with sensitive values masked.
        """
        return {
            "database_url": self._redact_url(self.database.url) if self.database.url else "(not set)",
            "redis_url": self._redact_url(self.redis.url) if self.redis.url else "(not set)",
            "chain": {
                "fetch_max_attempts": str(self.chain.fetch_max_attempts),
                "fetch_retry_delay_seconds": str(self.chain.fetch_retry_delay_seconds),
            },
            "analysis": {
                "windows_hours": self.analysis.windows_hours,
                "freshness_tolerance_slots": str(self.analysis.freshness_tolerance_slots),
                "snapshot_batch_size": str(self.analysis.snapshot_batch_size),
                "slot_duration_seconds": str(self.analysis.slot_duration_seconds),
                "synthesize_opening_balances": str(self.analysis.synthesize_opening_balances),
            },
            "scoring": {
                "timeout_seconds": str(self.scoring.timeout_seconds),
                "max_attempts": str(self.scoring.max_attempts),
                "model_artifact_path": str(self.scoring.model_artifact_path or "(not set)"),
            },
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact password from URL if present."""
        if "@" in url and "://" in url:
            # URL has credentials - redact the password
            protocol_end = url.index("://") + 3
            at_pos = url.index("@")
            creds_part = url[protocol_end:at_pos]
            if ":" in creds_part:
                username = creds_part.split(":")[0]
                return f"{url[:protocol_end]}{username}:***@{url[at_pos + 1 :]}"
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the application settings singleton.

    Uses LRU cache to ensure settings are loaded only once and
    reused across the application.

    Returns:
        The Settings instance.

    Raises:
        ValidationError: If environment variables have invalid values.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing when you need to reload settings with
    different environment variables.
    """
    get_settings.cache_clear()
