"""Configuration module for the FineAuth server."""

from fineauth.exceptions import ConfigurationError

from .esi import ESISettings
from .server import ServerSettings
from .settings import (
    CharacterSettings,
    DatabaseSettings,
    PermissionSettings,
    Settings,
    get_settings,
)


__all__ = [
    "Settings",
    "get_settings",
    "ServerSettings",
    "ESISettings",
    "DatabaseSettings",
    "PermissionSettings",
    "CharacterSettings",
    "ConfigurationError",
]
