"""Unit tests for the configuration module."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from pageflow.config import (
    ConfigurationError,
    ConfigurationFileNotFoundError,
    ConfigurationValidationError,
    LoggingConfig,
    SessionsConfig,
    Settings,
    StageCommandConfig,
    StagesConfig,
    WebConfig,
    clear_settings_cache,
    find_config_file,
    get_settings,
    load_settings,
)
from pageflow.flow import Stage
from pageflow.observability import LogFormat, LogLevel


if TYPE_CHECKING:
    from collections.abc import Generator
    from pathlib import Path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_settings() -> Generator[None, None, None]:
    """Clear settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def sample_config_yaml(tmp_path: Path) -> Path:
    """Create a sample configuration file."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("""
stages:
  preprocessing:
    command: ["ocr4all-preprocess", "--parallel", "4"]
  segmentation:
    command: ["ocr4all-segment"]
    env:
      OMP_NUM_THREADS: "2"
  region_extraction:
    command: ["ocr4all-regions"]

sessions:
  idle_ttl_seconds: 3600
  cookie_name: "flow_sid"

web:
  host: "0.0.0.0"
  port: 9000

observability:
  logging:
    level: "DEBUG"
    format: "json"
""")
    return config_file


@pytest.fixture
def config_with_interpolation(tmp_path: Path) -> Path:
    """Create a config file using ${VAR} interpolation."""
    config_file = tmp_path / "config.yaml"
    config_file.write_text("""
stages:
  recognition:
    command: ["${OCR_BIN:-/usr/local/bin}/recognize", "${OCR_EXTRA}"]
    env:
      MODEL_DIR: "${TEST_MODEL_DIR}"
""")
    return config_file


# ---------------------------------------------------------------------------
# Schema Validation Tests
# ---------------------------------------------------------------------------


class TestSchemaValidation:
    """Tests for configuration schema models."""

    def test_stage_command_defaults_to_unconfigured(self) -> None:
        config = StageCommandConfig()

        assert config.command == []
        assert config.env == {}
        assert config.configured is False

    def test_stage_command_drops_blank_arguments(self) -> None:
        config = StageCommandConfig(command=["segment", "", "  ", "--fast"])

        assert config.command == ["segment", "--fast"]
        assert config.configured is True

    def test_stages_for_stage(self) -> None:
        stages = StagesConfig(
            region_extraction={"command": ["regions"]},
            line_segmentation={"command": ["lines"]},
        )

        assert stages.for_stage(Stage.REGION_EXTRACTION).command == ["regions"]
        assert stages.for_stage(Stage.LINE_SEGMENTATION).command == ["lines"]
        assert stages.for_stage(Stage.RECOGNITION).configured is False

    def test_stages_unconfigured_in_canonical_order(self) -> None:
        stages = StagesConfig(
            preprocessing={"command": ["pre"]},
            recognition={"command": ["rec"]},
        )

        assert stages.unconfigured() == [
            Stage.DESPECKLING,
            Stage.SEGMENTATION,
            Stage.REGION_EXTRACTION,
            Stage.LINE_SEGMENTATION,
        ]

    def test_sessions_defaults(self) -> None:
        config = SessionsConfig()

        assert config.idle_ttl_seconds == 28800
        assert config.cookie_name == "pageflow_session"
        assert config.cookie_secure is False

    @pytest.mark.parametrize("ttl", [59, 604801])
    def test_sessions_ttl_bounds(self, ttl: int) -> None:
        with pytest.raises(ValidationError):
            SessionsConfig(idle_ttl_seconds=ttl)

    def test_web_config_port_bounds(self) -> None:
        WebConfig(port=1)
        WebConfig(port=65535)

        with pytest.raises(ValidationError):
            WebConfig(port=0)
        with pytest.raises(ValidationError):
            WebConfig(port=65536)

    def test_logging_accepts_upper_case(self) -> None:
        config = LoggingConfig(level="WARNING", format="JSON")

        assert config.level is LogLevel.WARNING
        assert config.format is LogFormat.JSON

    def test_config_forbids_extra_fields(self) -> None:
        with pytest.raises(ValidationError):
            StagesConfig(binarization={"command": ["x"]})

        with pytest.raises(ValidationError):
            StageCommandConfig(command=["x"], timeout=10)


# ---------------------------------------------------------------------------
# Settings Loading Tests
# ---------------------------------------------------------------------------


class TestSettingsLoading:
    """Tests for settings loading functionality."""

    def test_load_settings_with_defaults(self) -> None:
        settings = load_settings()

        assert settings.web.port == 8080
        assert settings.stages.unconfigured() == list(Stage)
        assert settings.observability.logging.level is LogLevel.INFO

    def test_load_settings_from_yaml(self, sample_config_yaml: Path) -> None:
        settings = load_settings(sample_config_yaml)

        assert settings.stages.preprocessing.command == [
            "ocr4all-preprocess",
            "--parallel",
            "4",
        ]
        assert settings.stages.segmentation.env == {"OMP_NUM_THREADS": "2"}
        assert settings.stages.for_stage(Stage.REGION_EXTRACTION).configured
        assert settings.sessions.idle_ttl_seconds == 3600
        assert settings.sessions.cookie_name == "flow_sid"
        assert settings.web.host == "0.0.0.0"  # noqa: S104
        assert settings.web.port == 9000
        assert settings.observability.logging.level is LogLevel.DEBUG
        assert settings.observability.logging.format is LogFormat.JSON

    def test_load_settings_requires_file(self) -> None:
        with pytest.raises(ConfigurationFileNotFoundError) as exc_info:
            load_settings(require_config_file=True)

        assert exc_info.value.path is None
        assert exc_info.value.searched_paths

    def test_explicit_missing_file_fails(self) -> None:
        with pytest.raises(ConfigurationFileNotFoundError) as exc_info:
            load_settings("/nonexistent/config.yaml")

        assert "not found" in exc_info.value.message.lower()
        assert exc_info.value.path == "/nonexistent/config.yaml"

    def test_invalid_values_raise_validation_error(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("web:\n  port: 70000\n")

        with pytest.raises(ConfigurationValidationError) as exc_info:
            load_settings(config_file)

        assert exc_info.value.errors
        assert exc_info.value.errors[0]["loc"] == ("web", "port")

    def test_unknown_section_key_rejected(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("stages:\n  binarization:\n    command: [x]\n")

        with pytest.raises(ConfigurationValidationError):
            load_settings(config_file)


class TestEnvironmentVariableInterpolation:
    """Tests for ${VAR} interpolation in YAML values."""

    def test_interpolation_with_value(
        self,
        config_with_interpolation: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("OCR_BIN", "/opt/ocr/bin")
        monkeypatch.setenv("OCR_EXTRA", "--gpu")
        monkeypatch.setenv("TEST_MODEL_DIR", "/models")

        settings = load_settings(config_with_interpolation)

        assert settings.stages.recognition.command == [
            "/opt/ocr/bin/recognize",
            "--gpu",
        ]
        assert settings.stages.recognition.env == {"MODEL_DIR": "/models"}

    def test_interpolation_with_default(
        self,
        config_with_interpolation: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("OCR_BIN", raising=False)
        monkeypatch.setenv("OCR_EXTRA", "--gpu")

        settings = load_settings(config_with_interpolation)

        assert settings.stages.recognition.command[0] == "/usr/local/bin/recognize"

    def test_missing_variable_leaves_no_blank_argument(
        self,
        config_with_interpolation: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.delenv("OCR_EXTRA", raising=False)
        monkeypatch.delenv("TEST_MODEL_DIR", raising=False)

        settings = load_settings(config_with_interpolation)

        assert len(settings.stages.recognition.command) == 1
        assert settings.stages.recognition.env == {"MODEL_DIR": ""}


class TestEnvironmentVariableOverrides:
    """Tests for environment variable overrides."""

    def test_env_override_simple(
        self,
        sample_config_yaml: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("PAGEFLOW_WEB__PORT", "3000")

        settings = load_settings(sample_config_yaml)

        assert settings.web.port == 3000

    def test_env_override_nested(
        self,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("PAGEFLOW_SESSIONS__COOKIE_SECURE", "true")

        settings = load_settings()

        assert settings.sessions.cookie_secure is True


# ---------------------------------------------------------------------------
# Settings Caching Tests
# ---------------------------------------------------------------------------


class TestSettingsCaching:
    """Tests for settings caching behavior."""

    def test_get_settings_caches(self) -> None:
        assert get_settings() is get_settings()

    def test_clear_settings_cache(self) -> None:
        settings1 = get_settings()
        clear_settings_cache()

        assert get_settings() is not settings1

    def test_load_settings_updates_cache(self, sample_config_yaml: Path) -> None:
        settings1 = get_settings()
        settings2 = load_settings(sample_config_yaml)

        assert get_settings() is settings2
        assert settings2 is not settings1


# ---------------------------------------------------------------------------
# Find Config File Tests
# ---------------------------------------------------------------------------


class TestFindConfigFile:
    """Tests for find_config_file function."""

    def test_find_explicit_path(self, sample_config_yaml: Path) -> None:
        assert find_config_file(sample_config_yaml) == sample_config_yaml
        assert find_config_file(str(sample_config_yaml)) == sample_config_yaml

    def test_find_nonexistent_returns_none(self) -> None:
        assert find_config_file("/nonexistent/config.yaml") is None

    def test_find_searches_default_paths(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.chdir(tmp_path)
        config_file = tmp_path / "config.yml"
        config_file.write_text("web:\n  port: 1234\n")

        result = find_config_file(None)

        assert result is not None
        assert result.resolve() == config_file.resolve()
        assert load_settings().web.port == 1234


# ---------------------------------------------------------------------------
# Exception Tests
# ---------------------------------------------------------------------------


class TestExceptions:
    """Tests for configuration exceptions."""

    def test_file_not_found_lists_searched_paths(self) -> None:
        exc = ConfigurationFileNotFoundError(searched_paths=["a.yaml", "b.yaml"])

        assert isinstance(exc, ConfigurationError)
        assert "a.yaml, b.yaml" in exc.message

    def test_file_not_found_without_paths(self) -> None:
        assert ConfigurationFileNotFoundError().message == (
            "Configuration file not found"
        )

    def test_validation_error_defaults_to_no_errors(self) -> None:
        exc = ConfigurationValidationError("bad")

        assert exc.errors == []
        assert str(exc) == "bad"


class TestSettingsObject:
    """Tests for the composed Settings object."""

    def test_settings_has_all_sections(self) -> None:
        settings = Settings()

        assert isinstance(settings.stages, StagesConfig)
        assert isinstance(settings.sessions, SessionsConfig)
        assert isinstance(settings.web, WebConfig)
        assert isinstance(settings.observability.logging, LoggingConfig)
