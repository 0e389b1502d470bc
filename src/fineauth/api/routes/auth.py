"""EVE SSO login routes."""

import html
from typing import Annotated

import orjson
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials
from structlog import get_logger

from fineauth.api.dependencies import ServiceDep, bearer_scheme
from fineauth.auth.state import LoginMode
from fineauth.exceptions import FineAuthError
from fineauth.services.schemas import LoginRequest, LoginResponse


logger = get_logger(__name__)

router = APIRouter(tags=["auth"])

TOKEN_STORAGE_KEY = "fineauth_token"
HOME_ROUTE = "/#/module/home"
CHARACTERS_ROUTE = "/#/module/characters"


# =============================================================================
# HTML Templates
# =============================================================================


def _error_html(title: str, message: str, status_code: int) -> HTMLResponse:
    return HTMLResponse(
        content=f"""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>{html.escape(title)}</title>
  </head>
  <body>
    <h1>{html.escape(title)}</h1>
    <p>{html.escape(message)}</p>
    <p><a href="/">Back to FineAuth</a></p>
  </body>
</html>""",
        status_code=status_code,
    )


def _login_html(session_token: str) -> HTMLResponse:
    # orjson output is a valid JS string literal; "<" is escaped to keep it inside the script tag
    token_literal = orjson.dumps(session_token).decode().replace("<", "\\u003c")
    return HTMLResponse(
        content=f"""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>FineAuth ESI Login</title>
  </head>
  <body>
    <script>
      localStorage.setItem('{TOKEN_STORAGE_KEY}', {token_literal});
      window.location.href = '{HOME_ROUTE}';
    </script>
    <p>Signing you in...</p>
  </body>
</html>"""
    )


def _add_character_html() -> HTMLResponse:
    return HTMLResponse(
        content=f"""<!doctype html>
<html>
  <head>
    <meta charset="utf-8" />
    <title>FineAuth Characters</title>
  </head>
  <body>
    <script>
      window.location.href = '{CHARACTERS_ROUTE}';
    </script>
    <p>Adding character...</p>
  </body>
</html>"""
    )


# =============================================================================
# Routes
# =============================================================================


@router.post("/auth/login", response_model=LoginResponse)
async def begin_login(
    body: LoginRequest,
    service: ServiceDep,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> LoginResponse:
    """Start a login and return the provider authorize URL.

    The session token for add-character may come in the body or as a bearer.
    """
    token = body.token or (credentials.credentials if credentials else None)
    url = await service.begin_login(body.mode, session_token=token)
    return LoginResponse(url=url)


@router.get("/auth/login")
async def begin_primary_login(service: ServiceDep) -> RedirectResponse:
    """Redirect a browser straight to the provider for a primary login."""
    url = await service.begin_login(LoginMode.PRIMARY)
    return RedirectResponse(url, status_code=302)


@router.get("/callback", response_class=HTMLResponse)
async def oauth_callback(
    request: Request,
    service: ServiceDep,
    code: str | None = Query(None),
    state: str | None = Query(None),
) -> HTMLResponse:
    """Provider redirect target; completes the login."""
    try:
        outcome = await service.handle_callback(code, state)
    except FineAuthError as e:
        logger.warning(
            "login_callback_failed",
            error_type=str(e.error_type),
            error=e.message,
            client_ip=request.client.host if request.client else "unknown",
            **e.details,
        )
        return _error_html("ESI login failed", e.message, e.status_code)

    if outcome.mode is LoginMode.ADD_CHARACTER:
        return _add_character_html()

    assert outcome.result.session_token is not None
    return _login_html(outcome.result.session_token)
