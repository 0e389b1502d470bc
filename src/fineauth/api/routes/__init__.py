"""API routes for the FineAuth server."""

from fineauth.api.routes.auth import router as auth_router
from fineauth.api.routes.esi import router as esi_router
from fineauth.api.routes.events import router as events_router
from fineauth.api.routes.session import router as session_router


__all__ = ["auth_router", "esi_router", "events_router", "session_router"]
