"""Settings configuration for the FineAuth server."""

import os
import tomllib
from pathlib import Path
from typing import Any

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fineauth.config.discovery import CONFIG_ENV_VAR, find_toml_config_file
from fineauth.exceptions import ConfigurationError

from .esi import ESISettings
from .server import ServerSettings


__all__ = [
    "Settings",
    "DatabaseSettings",
    "PermissionSettings",
    "CharacterSettings",
    "get_settings",
]


logger = structlog.get_logger(__name__)


class DatabaseSettings(BaseSettings):
    """SQLite storage location."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE__", case_sensitive=False, extra="ignore"
    )

    path: Path = Field(default=Path("data.sqlite"))


class PermissionSettings(BaseSettings):
    """Permission registry file location."""

    model_config = SettingsConfigDict(
        env_prefix="PERMISSIONS__", case_sensitive=False, extra="ignore"
    )

    path: Path = Field(default=Path("config/permissions.json"))


class CharacterSettings(BaseSettings):
    """Settings of the characters module."""

    model_config = SettingsConfigDict(
        env_prefix="CHARACTERS__", case_sensitive=False, extra="ignore"
    )

    allow_all_members: bool = Field(
        default=False,
        description="Let every member add characters without the characters.add permission",
    )


def _coerce_settings(value: Any, settings_class: type) -> Any:
    """Coerce value to settings class instance.

    Handles: None -> default, dict -> instance, passthrough existing instances.
    """
    if value is None:
        return settings_class()
    if isinstance(value, settings_class):
        return value
    if isinstance(value, dict):
        return settings_class(**value)
    return value


class Settings(BaseSettings):
    """
    Configuration settings for the FineAuth server.

    Settings are loaded from environment variables, .env files, and a TOML file.
    Environment variables take precedence over .env file values.
    The TOML file is FINEAUTH_CONFIG if set, else the first of
    ./fineauth.toml, ./config/fineauth.toml, <user config dir>/fineauth/config.toml.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    esi: ESISettings = Field(default_factory=ESISettings)
    permissions: PermissionSettings = Field(default_factory=PermissionSettings)
    characters: CharacterSettings = Field(default_factory=CharacterSettings)

    @field_validator("server", mode="before")
    @classmethod
    def validate_server(cls, v: Any) -> Any:
        return _coerce_settings(v, ServerSettings)

    @field_validator("database", mode="before")
    @classmethod
    def validate_database(cls, v: Any) -> Any:
        return _coerce_settings(v, DatabaseSettings)

    @field_validator("esi", mode="before")
    @classmethod
    def validate_esi(cls, v: Any) -> Any:
        return _coerce_settings(v, ESISettings)

    @field_validator("permissions", mode="before")
    @classmethod
    def validate_permissions(cls, v: Any) -> Any:
        return _coerce_settings(v, PermissionSettings)

    @field_validator("characters", mode="before")
    @classmethod
    def validate_characters(cls, v: Any) -> Any:
        return _coerce_settings(v, CharacterSettings)

    @property
    def server_url(self) -> str:
        """Get the complete server URL."""
        return f"http://{self.server.host}:{self.server.port}"

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Raises:
            ConfigurationError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read TOML config file {toml_path}: {e}"
            ) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings instance from configuration file.

        Args:
            config_path: Path to configuration file. If None, uses the
                FINEAUTH_CONFIG env var or auto-discovers a file.
            **kwargs: Overrides that take precedence over file values
        """
        if config_path is None:
            config_path_env = os.environ.get(CONFIG_ENV_VAR)
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        config_data: dict[str, Any] = {}
        if config_path and config_path.exists():
            config_data = cls.load_toml_config(config_path)
            logger.debug("config_file_loaded", path=str(config_path))

        merged_config = {**config_data, **kwargs}
        return cls(**merged_config)


def get_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from file and environment.

    Raises:
        ConfigurationError: If the configuration cannot be loaded or validated
    """
    try:
        return Settings.from_config(config_path=config_path)
    except ValueError as e:
        # pydantic.ValidationError is a ValueError
        raise ConfigurationError(f"Configuration error: {e}") from e
