"""Unit tests for PipelineConfig and settings."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from cayman_watch.core.config import DatabaseSettings, Settings
from cayman_watch.core.exceptions import ConfigurationError
from cayman_watch.core.pipeline_config import (
    DEFAULT_REQUIRED_FIELDS,
    PipelineConfig,
    SectionTarget,
)
from cayman_watch.models.records import RecordKind


class TestPipelineConfig:
    """Tests for defaults, per-kind thresholds and run validation."""

    def test_defaults(self):
        config = PipelineConfig()

        assert config.max_tokens_per_batch == 180000
        assert config.exploration_rate == 0.10
        assert config.quality_threshold == 90.0
        assert config.max_retries == 3
        assert config.backoff_base_ms == 2000
        assert config.inter_batch_delay_ms == 1000
        assert len(config.target_sections) == 7

    def test_config_is_frozen(self):
        config = PipelineConfig()

        with pytest.raises(PydanticValidationError):
            config.max_retries = 5

    def test_out_of_range_values_rejected(self):
        with pytest.raises(PydanticValidationError):
            PipelineConfig(exploration_rate=1.5)
        with pytest.raises(PydanticValidationError):
            PipelineConfig(max_retries=0)

    def test_threshold_overrides(self):
        config = PipelineConfig(quality_threshold=80.0)

        assert config.threshold_for(RecordKind.GAZETTE_NOTICE) == 80.0
        assert config.threshold_for(RecordKind.CASE_FILING) == 60.0
        assert config.priority_threshold_for(RecordKind.ARTICLE) == 50.0

    def test_required_fields_for(self):
        config = PipelineConfig()

        assert config.required_fields_for(RecordKind.GAZETTE_NOTICE) == (
            DEFAULT_REQUIRED_FIELDS[RecordKind.GAZETTE_NOTICE]
        )

    def test_default_config_validates(self):
        PipelineConfig().validate_required()

    def test_empty_target_vocabulary(self):
        with pytest.raises(ConfigurationError, match="vocabulary is empty"):
            PipelineConfig(target_sections=()).validate_required()

    def test_invalid_heading_pattern(self):
        target = SectionTarget(key="broken", name="Broken Notices", patterns=("Broken (Notices",))

        with pytest.raises(ConfigurationError, match="Invalid heading pattern"):
            PipelineConfig(target_sections=(target,)).validate_required()

    def test_target_without_patterns(self):
        target = SectionTarget(key="empty", name="Empty Notices", patterns=())

        with pytest.raises(ConfigurationError, match="no heading patterns"):
            PipelineConfig(target_sections=(target,)).validate_required()

    def test_missing_required_fields_for_kind(self):
        required = dict(DEFAULT_REQUIRED_FIELDS)
        del required[RecordKind.ARTICLE]

        with pytest.raises(ConfigurationError, match="article"):
            PipelineConfig(required_fields=required).validate_required()


class TestSettings:
    """Tests for environment-driven settings."""

    def test_pipeline_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("MAX_RETRIES", "5")
        monkeypatch.setenv("EXPLORATION_RATE", "0.25")

        config = PipelineConfig.from_settings(Settings())

        assert config.max_retries == 5
        assert config.exploration_rate == 0.25
        assert config.name_match_threshold == 90.0

    def test_overrides_take_precedence(self, monkeypatch):
        monkeypatch.setenv("MAX_RETRIES", "5")

        config = PipelineConfig.from_settings(Settings(), max_retries=2)

        assert config.max_retries == 2

    @pytest.mark.parametrize(
        "url",
        ["postgres://u:p@db:5432/cw", "postgresql://u:p@db:5432/cw", "postgresql+asyncpg://u:p@db:5432/cw"],
    )
    def test_connection_url_uses_asyncpg(self, monkeypatch, url):
        monkeypatch.setenv("DATABASE_URL", url)

        assert DatabaseSettings().connection_url == "postgresql+asyncpg://u:p@db:5432/cw"
        assert Settings().database_url == "postgresql+asyncpg://u:p@db:5432/cw"

    def test_sqlite_url_unchanged(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///cayman.db")

        assert DatabaseSettings().connection_url == "sqlite+aiosqlite:///cayman.db"
