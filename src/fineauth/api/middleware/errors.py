"""Error handling middleware for the FineAuth API.

Every FineAuthError subclass already knows its error_type and status_code;
this module only renders them as ``{"error": {"type", "message"}}``.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException
from structlog import get_logger

from fineauth.exceptions import FineAuthError


logger = get_logger(__name__)


def _get_client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _build_error_response(
    status_code: int, error_type: str, message: str
) -> JSONResponse:
    """Build standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Setup error handlers for the FastAPI application."""

    @app.exception_handler(FineAuthError)
    async def fineauth_error_handler(
        request: Request, exc: FineAuthError
    ) -> JSONResponse:
        error_type = str(exc.error_type)
        log_kwargs = {
            "error_type": error_type,
            "error_message": exc.message,
            "status_code": exc.status_code,
            "request_method": request.method,
            "request_url": str(request.url.path),
            **exc.details,
        }
        if exc.status_code in (401, 403):
            log_kwargs["client_ip"] = _get_client_ip(request)

        if exc.status_code >= 500:
            logger.error(type(exc).__name__, **log_kwargs)
        else:
            logger.warning(type(exc).__name__, **log_kwargs)

        return _build_error_response(exc.status_code, error_type, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        log_kwargs = {
            "error_type": f"http_{exc.status_code}",
            "error_message": exc.detail,
            "status_code": exc.status_code,
            "request_method": request.method,
            "request_url": str(request.url.path),
        }
        if exc.status_code == 404:
            logger.debug("http_not_found", **log_kwargs)
        else:
            logger.warning("http_exception", **log_kwargs)

        return _build_error_response(exc.status_code, "http_error", str(exc.detail))

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception",
            error_type="unhandled_exception",
            error_message=str(exc),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            request_method=request.method,
            request_url=str(request.url.path),
            exc_info=True,
        )
        return _build_error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "internal_server_error",
            "An internal server error occurred",
        )
