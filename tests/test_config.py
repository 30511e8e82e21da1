"""Tests for configuration management."""

from __future__ import annotations

import logging
from datetime import timedelta

import pytest
from pydantic import ValidationError

from wallet_insight.config import (
    AnalysisSettings,
    DatabaseSettings,
    RedisSettings,
    ScoringSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Run each test away from any local .env file and reset the singleton."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "DATABASE_URL",
        "REDIS_URL",
        "LOG_LEVEL",
        "ANALYSIS_WINDOWS_HOURS",
        "ANALYSIS_FRESHNESS_TOLERANCE_SLOTS",
        "SCORING_MODEL_ARTIFACT_PATH",
        "SCORING_MODEL_SCHEMA_JSON",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


class TestDefaults:
    def test_defaults(self) -> None:
        settings = Settings()

        assert settings.database.url is None
        assert not settings.database.enabled
        assert not settings.redis.enabled
        assert settings.chain.fetch_max_attempts == 3
        assert settings.analysis.windows == (timedelta(hours=24), timedelta(hours=168))
        assert settings.analysis.freshness_tolerance_slots == 0
        assert settings.analysis.snapshot_batch_size == 1
        assert settings.analysis.synthesize_opening_balances is False
        assert settings.analysis.cache_max_wallets == 10_000
        assert settings.scoring.timeout_seconds == 5.0
        assert not settings.scoring.model_enabled
        assert settings.get_logging_level() == logging.INFO


class TestEnvironment:
    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANALYSIS_WINDOWS_HOURS", "168, 1, 24")
        monkeypatch.setenv("ANALYSIS_FRESHNESS_TOLERANCE_SLOTS", "150")
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = Settings()

        assert settings.analysis.windows == (timedelta(hours=1), timedelta(hours=24), timedelta(hours=168))
        assert settings.analysis.freshness_tolerance_slots == 150
        assert settings.redis.enabled
        assert settings.get_logging_level() == logging.DEBUG

    def test_reads_env_file(self, tmp_path) -> None:
        (tmp_path / ".env").write_text("ANALYSIS_SNAPSHOT_BATCH_SIZE=25\n")

        assert Settings().analysis.snapshot_batch_size == 25

    def test_get_settings_is_cached(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_settings()
        monkeypatch.setenv("LOG_LEVEL", "ERROR")

        assert get_settings() is first
        clear_settings_cache()
        assert get_settings().log_level == "ERROR"


class TestValidation:
    @pytest.mark.parametrize(
        "value", ["", "24,abc", "0", "-5", "nan", "0.0001", "24,24.0001", "24,24"]
    )
    def test_invalid_windows(self, value: str) -> None:
        with pytest.raises(ValidationError):
            AnalysisSettings(ANALYSIS_WINDOWS_HOURS=value)

    def test_invalid_database_url(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseSettings(DATABASE_URL="mysql://localhost/db")

    def test_invalid_redis_url(self) -> None:
        with pytest.raises(ValidationError):
            RedisSettings(REDIS_URL="localhost:6379")

    def test_negative_tolerance_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AnalysisSettings(ANALYSIS_FRESHNESS_TOLERANCE_SLOTS=-1)

    def test_model_enabled_requires_both_fields(self, tmp_path) -> None:
        partial = ScoringSettings(SCORING_MODEL_ARTIFACT_PATH=tmp_path / "model.joblib")
        full = ScoringSettings(
            SCORING_MODEL_ARTIFACT_PATH=tmp_path / "model.joblib",
            SCORING_MODEL_SCHEMA_JSON='{"feature_columns": ["holding_count"]}',
        )

        assert not partial.model_enabled
        assert full.model_enabled


class TestRedaction:
    def test_password_redacted(self) -> None:
        settings = Settings(
            database=DatabaseSettings(DATABASE_URL="postgresql+asyncpg://user:secret@db:5432/insight"),
        )

        summary = settings.redacted_summary()

        assert summary["database_url"] == "postgresql+asyncpg://user:***@db:5432/insight"
        assert "secret" not in str(summary)
        assert summary["redis_url"] == "(not set)"


class TestWindows:
    def test_windows_are_whole_seconds(self) -> None:
        analysis = AnalysisSettings(ANALYSIS_WINDOWS_HOURS="0.5,1")

        assert analysis.windows == (timedelta(minutes=30), timedelta(hours=1))

    def test_one_second_window_allowed(self) -> None:
        analysis = AnalysisSettings(ANALYSIS_WINDOWS_HOURS=str(1 / 3600))

        assert analysis.windows == (timedelta(seconds=1),)
