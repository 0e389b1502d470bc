"""FastAPI application factory for the FineAuth server."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from structlog import get_logger

from fineauth import __version__
from fineauth.api.middleware.errors import setup_error_handlers
from fineauth.api.middleware.logging import AccessLogMiddleware, RequestIDMiddleware
from fineauth.api.routes import auth_router, esi_router, events_router, session_router
from fineauth.config.settings import Settings, get_settings
from fineauth.core.logging import setup_logging
from fineauth.db.engine import dispose_db, init_db
from fineauth.services.federation import FederationService


logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    service: FederationService | None = None,
    run_jobs: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override. If None, uses get_settings().
        service: Prebuilt service, mainly for tests; built at startup otherwise
        run_jobs: Start the periodic background jobs
    """
    if settings is None:
        settings = get_settings()

    if not structlog.is_configured():
        setup_logging(
            json_logs=settings.server.json_logs,
            log_level_name=settings.server.log_level,
            log_file=settings.server.log_file,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        app.state.settings = settings
        await init_db(settings.database.path)

        app.state.service = service or FederationService(settings)
        await app.state.service.start(run_jobs=run_jobs)
        logger.info(
            "server_start",
            host=settings.server.host,
            port=settings.server.port,
            esi_configured=settings.esi.is_configured,
        )

        try:
            yield
        finally:
            logger.debug("server_stop")
            await app.state.service.shutdown()
            app.state.service = None
            await dispose_db()

    app = FastAPI(
        title="FineAuth",
        description="EVE Online SSO identity federation with an ESI call queue",
        version=__version__,
        lifespan=lifespan,
    )

    setup_error_handlers(app)
    app.add_middleware(AccessLogMiddleware)
    # Added last so it runs first and the access log sees the request id
    app.add_middleware(RequestIDMiddleware)

    app.include_router(auth_router)
    app.include_router(session_router)
    app.include_router(esi_router)
    app.include_router(events_router)

    return app


def get_app() -> FastAPI:
    """Application factory for ``uvicorn --factory``."""
    return create_app()
