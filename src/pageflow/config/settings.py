"""Settings loading for pageflow.

Sources, strongest first: constructor arguments, ``PAGEFLOW_*``
environment variables, then one YAML file. Strings inside the YAML file
can pull in environment variables with ``${VAR}`` or
``${VAR:-default}``.

Example:
    >>> from pageflow.config import load_settings
    >>> settings = load_settings("config.yaml")
    >>> settings.stages.segmentation.command
    ['ocr4all-segment']
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from pageflow.config.exceptions import (
    ConfigurationFileNotFoundError,
    ConfigurationValidationError,
)
from pageflow.config.schema import (
    ObservabilityConfig,
    SessionsConfig,
    StagesConfig,
    WebConfig,
)


if TYPE_CHECKING:
    from collections.abc import Sequence


__all__ = [
    "CONFIG_SEARCH_PATHS",
    "Settings",
    "clear_settings_cache",
    "find_config_file",
    "get_settings",
    "load_settings",
]


CONFIG_SEARCH_PATHS: tuple[Path, ...] = (
    Path("config.yaml"),
    Path("config.yml"),
    Path.home() / ".config" / "pageflow" / "config.yaml",
    Path("/etc/pageflow/config.yaml"),
)


# ---------------------------------------------------------------------------
# ${VAR} interpolation
# ---------------------------------------------------------------------------

_REFERENCE = re.compile(
    r"\$\{(?P<name>[A-Z_][A-Z0-9_]*)(?::-(?P<default>[^}]*))?\}",
)


def _expand(text: str) -> str:
    """Substitute environment references in one string.

    A variable that is unset and has no default expands to ``""``.
    """
    return _REFERENCE.sub(
        lambda m: os.environ.get(m["name"], m["default"] or ""),
        text,
    )


def _interpolate(node: Any) -> Any:
    """Apply :func:`_expand` to every string in a parsed YAML tree."""
    if isinstance(node, str):
        return _expand(node)
    if isinstance(node, list):
        return [_interpolate(item) for item in node]
    if isinstance(node, dict):
        return {key: _interpolate(item) for key, item in node.items()}
    return node


class _ExpandingYamlSource(YamlConfigSettingsSource):
    """YAML source whose string values go through ``_interpolate``."""

    def _read_files(
        self,
        files: Path | str | Sequence[Path | str] | None,
    ) -> dict[str, Any]:
        data = _interpolate(super()._read_files(files))
        return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """Application settings.

    Nested values can be overridden from the environment with ``__`` as
    the separator, e.g. ``PAGEFLOW_STAGES__RECOGNITION__COMMAND`` (JSON)
    or ``PAGEFLOW_WEB__PORT``.

    Attributes:
        stages: External command per pipeline stage.
        sessions: Session lifetime and cookie settings.
        web: Web server settings.
        observability: Logging settings.
    """

    model_config = SettingsConfigDict(
        yaml_file=None,
        yaml_file_encoding="utf-8",
        env_prefix="PAGEFLOW_",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    stages: StagesConfig = StagesConfig()
    sessions: SessionsConfig = SessionsConfig()
    web: WebConfig = WebConfig()
    observability: ObservabilityConfig = ObservabilityConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use init, env, and YAML sources; ignore dotenv and secrets."""
        return (init_settings, env_settings, _ExpandingYamlSource(settings_cls))

    @classmethod
    def from_yaml(cls, config_file: Path | None) -> Settings:
        """Build settings reading ``config_file`` as the YAML source.

        The file name lives on a throwaway subclass, never on ``Settings``.
        """
        bound = type(
            cls.__name__,
            (cls,),
            {"model_config": {**cls.model_config, "yaml_file": config_file}},
        )
        return bound()


# ---------------------------------------------------------------------------
# Loading and caching
# ---------------------------------------------------------------------------

_cache: dict[str, Settings] = {}


def find_config_file(config_path: Path | str | None = None) -> Path | None:
    """Locate the configuration file.

    Args:
        config_path: Explicit path, or None to search
            ``CONFIG_SEARCH_PATHS`` in order.

    Returns:
        The file path, or None if nothing was found.
    """
    candidates = (Path(config_path),) if config_path else CONFIG_SEARCH_PATHS
    return next((path for path in candidates if path.is_file()), None)


def load_settings(
    config_path: Path | str | None = None,
    *,
    require_config_file: bool = False,
) -> Settings:
    """Load and validate settings, then make them the cached instance.

    Args:
        config_path: YAML file to read. An explicit path that does not
            exist is an error. When None the default locations are
            searched and a missing file means defaults apply.
        require_config_file: Fail when the search finds no file.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationFileNotFoundError: If a required file is missing.
        ConfigurationValidationError: If the merged values are invalid.
    """
    config_file = find_config_file(config_path)
    if config_file is None and (require_config_file or config_path):
        raise ConfigurationFileNotFoundError(
            path=str(config_path) if config_path else None,
            searched_paths=[str(path) for path in CONFIG_SEARCH_PATHS],
        )

    try:
        settings = Settings.from_yaml(config_file)
    except ValidationError as exc:
        raise ConfigurationValidationError.from_pydantic(exc) from exc
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Failed to read configuration from {config_file}: {exc}"
        raise ConfigurationValidationError(msg) from exc

    _cache["settings"] = settings
    return settings


def get_settings() -> Settings:
    """Return the cached settings, loading them on first use."""
    if "settings" not in _cache:
        return load_settings()
    return _cache["settings"]


def clear_settings_cache() -> None:
    """Forget cached settings (mainly for tests)."""
    _cache.clear()
