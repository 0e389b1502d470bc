"""API layer for the FineAuth server."""

from fineauth.api.app import create_app, get_app


__all__ = ["create_app", "get_app"]
