"""Configuration exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Iterable

    from pydantic import ValidationError


__all__ = [
    "ConfigurationError",
    "ConfigurationFileNotFoundError",
    "ConfigurationValidationError",
]


class ConfigurationError(Exception):
    """Settings could not be loaded.

    The CLI turns any of these into exit status 2.
    """

    @property
    def message(self) -> str:
        """The error text."""
        return str(self.args[0]) if self.args else ""


class ConfigurationFileNotFoundError(ConfigurationError, FileNotFoundError):
    """A configuration file was required but none exists.

    Attributes:
        path: Explicitly requested path, or None when defaults were searched.
        searched_paths: Locations that were tried.
    """

    def __init__(
        self,
        path: str | None = None,
        searched_paths: Iterable[str] = (),
    ) -> None:
        self.path = path
        self.searched_paths = list(searched_paths)

        if path:
            text = f"Configuration file not found: {path}"
        elif self.searched_paths:
            text = "No configuration file in: " + ", ".join(self.searched_paths)
        else:
            text = "Configuration file not found"
        super().__init__(text)


class ConfigurationValidationError(ConfigurationError, ValueError):
    """Configuration values failed validation.

    Attributes:
        errors: Pydantic error details; empty for read or parse failures.
    """

    def __init__(
        self,
        message: str,
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> ConfigurationValidationError:
        """Wrap a pydantic ``ValidationError``, keeping its details."""
        return cls(
            f"Invalid configuration: {exc}",
            errors=[dict(error) for error in exc.errors()],
        )
