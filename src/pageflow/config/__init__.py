"""Configuration for pageflow.

Settings are pydantic-settings models read from a YAML file (with
``${VAR}`` / ``${VAR:-default}`` interpolation) and ``PAGEFLOW_*``
environment variables.

Example:
    >>> from pageflow.config import get_settings
    >>> settings = get_settings()
    >>> settings.web.port
    8080
"""

from __future__ import annotations

from pageflow.config.exceptions import (
    ConfigurationError,
    ConfigurationFileNotFoundError,
    ConfigurationValidationError,
)
from pageflow.config.schema import (
    ConfigBaseModel,
    LoggingConfig,
    ObservabilityConfig,
    SessionsConfig,
    StageCommandConfig,
    StagesConfig,
    WebConfig,
)
from pageflow.config.settings import (
    Settings,
    clear_settings_cache,
    find_config_file,
    get_settings,
    load_settings,
)


__all__ = [
    "ConfigBaseModel",
    "ConfigurationError",
    "ConfigurationFileNotFoundError",
    "ConfigurationValidationError",
    "LoggingConfig",
    "ObservabilityConfig",
    "SessionsConfig",
    "Settings",
    "StageCommandConfig",
    "StagesConfig",
    "WebConfig",
    "clear_settings_cache",
    "find_config_file",
    "get_settings",
    "load_settings",
]
