"""Configuration schema models for pageflow.

Pydantic models for every configuration section. The Settings class
composes them and fills them from YAML files and environment variables.
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pageflow.flow.models import Stage
from pageflow.observability.logging import LogFormat, LogLevel


__all__ = [
    "ConfigBaseModel",
    "LoggingConfig",
    "ObservabilityConfig",
    "SessionsConfig",
    "StageCommandConfig",
    "StagesConfig",
    "WebConfig",
]


# ---------------------------------------------------------------------------
# Base Configuration Model
# ---------------------------------------------------------------------------


class ConfigBaseModel(BaseModel):
    """Base model for all configuration sections.

    Unknown keys are rejected so that typos in config files surface as
    validation errors instead of being silently ignored.
    """

    model_config = ConfigDict(
        extra="forbid",
        str_strip_whitespace=True,
        validate_default=True,
    )


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


class StageCommandConfig(ConfigBaseModel):
    """External command run by one stage.

    The command receives stage arguments derived from the request's
    settings, followed by the page ids. It runs in the project directory.

    Attributes:
        command: Program and fixed arguments. Empty means unconfigured.
        env: Extra environment variables (supports ${VAR} interpolation).
    """

    command: list[str] = Field(
        default_factory=list,
        description="Program and fixed arguments (empty = unconfigured)",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for the command",
    )

    @field_validator("command")
    @classmethod
    def drop_blank_arguments(cls, v: list[str]) -> list[str]:
        """Remove blank entries left by unset ${VAR} interpolation."""
        return [arg for arg in v if arg.strip()]

    @property
    def configured(self) -> bool:
        """Whether a command is set."""
        return bool(self.command)


class StagesConfig(ConfigBaseModel):
    """Commands for the six pipeline stages."""

    preprocessing: StageCommandConfig = Field(default_factory=StageCommandConfig)
    despeckling: StageCommandConfig = Field(default_factory=StageCommandConfig)
    segmentation: StageCommandConfig = Field(default_factory=StageCommandConfig)
    region_extraction: StageCommandConfig = Field(default_factory=StageCommandConfig)
    line_segmentation: StageCommandConfig = Field(default_factory=StageCommandConfig)
    recognition: StageCommandConfig = Field(default_factory=StageCommandConfig)

    def for_stage(self, stage: Stage) -> StageCommandConfig:
        """Return the command configuration of ``stage``."""
        config: StageCommandConfig = getattr(self, _STAGE_FIELDS[stage])
        return config

    def unconfigured(self) -> list[Stage]:
        """Return the stages without a command, in canonical order."""
        return [stage for stage in Stage if not self.for_stage(stage).configured]


_STAGE_FIELDS: dict[Stage, str] = {
    Stage.PREPROCESSING: "preprocessing",
    Stage.DESPECKLING: "despeckling",
    Stage.SEGMENTATION: "segmentation",
    Stage.REGION_EXTRACTION: "region_extraction",
    Stage.LINE_SEGMENTATION: "line_segmentation",
    Stage.RECOGNITION: "recognition",
}


# ---------------------------------------------------------------------------
# Sessions & Web
# ---------------------------------------------------------------------------


class SessionsConfig(ConfigBaseModel):
    """Session handling.

    Attributes:
        idle_ttl_seconds: Idle time before a session without an active
            run is dropped (1 minute to 7 days).
        cookie_name: Name of the session cookie.
        cookie_secure: Set the Secure flag on the cookie (requires HTTPS).
    """

    idle_ttl_seconds: Annotated[
        int,
        Field(ge=60, le=604800, description="Idle session lifetime"),
    ] = 28800
    cookie_name: str = Field(default="pageflow_session", min_length=1)
    cookie_secure: bool = Field(default=False)


class WebConfig(ConfigBaseModel):
    """Web API server configuration.

    Attributes:
        host: Bind address for the web server.
        port: Port number for the web server.
    """

    host: str = Field(default="127.0.0.1")
    port: Annotated[
        int,
        Field(ge=1, le=65535, description="Port number"),
    ] = 8080


# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------


class LoggingConfig(ConfigBaseModel):
    """Logging configuration.

    Attributes:
        level: Log verbosity level.
        format: Log output format.
    """

    level: LogLevel = Field(default=LogLevel.INFO)
    format: LogFormat = Field(default=LogFormat.AUTO)

    @field_validator("level", "format", mode="before")
    @classmethod
    def lowercase(cls, v: object) -> object:
        """Accept upper-case values such as ``INFO``."""
        return v.lower() if isinstance(v, str) else v


class ObservabilityConfig(ConfigBaseModel):
    """Observability configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
