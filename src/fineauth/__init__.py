"""FineAuth - EVE SSO identity federation and ESI call orchestration."""

from ._version import __version__


__all__ = ["__version__"]
