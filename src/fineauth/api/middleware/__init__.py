"""API middleware for the FineAuth server."""

from fineauth.api.middleware.errors import setup_error_handlers
from fineauth.api.middleware.logging import AccessLogMiddleware, RequestIDMiddleware


__all__ = ["AccessLogMiddleware", "RequestIDMiddleware", "setup_error_handlers"]
