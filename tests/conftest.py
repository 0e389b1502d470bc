"""Shared fixtures: temporary database, settings and a fake EVE SSO / ESI."""

import re
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
import orjson
import pytest
from fastapi.testclient import TestClient

from fineauth.api.app import create_app
from fineauth.config.settings import Settings
from fineauth.db import dispose_db, init_db
from fineauth.esi.client import ESIClient
from fineauth.services.federation import FederationService


_ENTITY_PATH = re.compile(r"^/latest/(characters|corporations|alliances)/(\d+)/$")


class FakeProvider:
    """In-memory stand-in for login.eveonline.com and esi.evetech.net."""

    def __init__(self) -> None:
        self.codes: dict[str, tuple[int, str]] = {}
        self.characters: dict[int, dict[str, Any]] = {}
        self.corporations: dict[int, dict[str, Any]] = {}
        self.alliances: dict[int, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.verify_status = 200
        self.esi_status = 200
        self.status_payload: dict[str, Any] = {"players": 23456, "server_version": "2345678"}

    def add_character(
        self,
        character_id: int,
        name: str,
        code: str | None = None,
        corporation: tuple[int, str] | None = None,
        alliance: tuple[int, str] | None = None,
    ) -> None:
        record: dict[str, Any] = {"name": name}
        if corporation:
            record["corporation_id"] = corporation[0]
            self.corporations[corporation[0]] = {"name": corporation[1]}
        if alliance:
            record["alliance_id"] = alliance[0]
            self.alliances[alliance[0]] = {"name": alliance[1]}
        self.characters[character_id] = record
        if code:
            self.codes[code] = (character_id, name)

    def count(self, path_prefix: str) -> int:
        return sum(1 for r in self.requests if r.url.path.startswith(path_prefix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/v2/oauth/token":
            return self._token(request)
        if path == "/oauth/verify":
            return self._verify(request)

        if self.esi_status != 200:
            return httpx.Response(self.esi_status, json={"error": "unavailable"})
        if path == "/latest/status/":
            return httpx.Response(200, json=self.status_payload)
        if path == "/latest/search/":
            name = request.url.params["search"]
            ids = [cid for cid, c in self.characters.items() if c["name"] == name]
            return httpx.Response(200, json={"character": ids} if ids else {})

        match = _ENTITY_PATH.match(path)
        if match:
            table = getattr(self, match.group(1))
            entity = table.get(int(match.group(2)))
            if entity is not None:
                return httpx.Response(200, json=entity)
        return httpx.Response(404, json={"error": "not found"})

    def _token(self, request: httpx.Request) -> httpx.Response:
        if self.token_status != 200:
            return httpx.Response(self.token_status, text='{"error":"invalid_grant"}')
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        if form["grant_type"] == "authorization_code":
            if form["code"] not in self.codes:
                return httpx.Response(400, text='{"error":"invalid_request"}')
            code = form["code"]
            return httpx.Response(
                200,
                json={
                    "access_token": f"access-{code}",
                    "refresh_token": f"refresh-{code}",
                    "expires_in": 1199,
                    "token_type": "Bearer",
                },
            )
        return httpx.Response(
            200,
            json={
                "access_token": "access-refreshed",
                "refresh_token": f"{form['refresh_token']}-rotated",
                "expires_in": 1199,
            },
        )

    def _verify(self, request: httpx.Request) -> httpx.Response:
        if self.verify_status != 200:
            return httpx.Response(self.verify_status, text="token is not valid")
        code = request.headers["Authorization"].removeprefix("Bearer access-")
        character_id, name = self.codes[code]
        return httpx.Response(200, json={"CharacterID": character_id, "CharacterName": name})


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        server={"log_file": None},
        database={"path": tmp_path / "fineauth.sqlite"},
        esi={
            "client_id": "test-client",
            "client_secret": "test-secret",
            "callback_url": "http://localhost:3000/callback",
            "scopes": ["esi-mail.read_mail.v1", "esi-skills.read_skills.v1"],
        },
        permissions={"path": tmp_path / "permissions.json"},
    )


@pytest.fixture
async def db(settings: Settings):
    """Initialize a temporary database for one test."""
    await init_db(settings.database.path)
    yield settings.database.path
    await dispose_db()


@pytest.fixture
async def esi_client(settings: Settings, provider: FakeProvider):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
    client = ESIClient(settings.esi, http_client=http_client)
    yield client
    await http_client.aclose()


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------

_TOKEN_SCRIPT = re.compile(r"localStorage\.setItem\('fineauth_token', (\"[^\"]*\")\)")


@pytest.fixture
def jane(provider: FakeProvider) -> None:
    provider.add_character(
        90000001,
        "Jane Doe",
        code="code-jane",
        corporation=(98000001, "Fine Corp"),
        alliance=(99000001, "Fine Alliance"),
    )
    provider.add_character(
        90000002, "John Roe", code="code-john", corporation=(98000001, "Fine Corp")
    )


@pytest.fixture
def api_client(settings: Settings, provider: FakeProvider, jane: None):
    """TestClient around an app whose ESI calls go to the fake provider."""
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(provider.handler))
    service = FederationService(settings, client=ESIClient(settings.esi, http_client=http_client))
    app = create_app(settings, service=service, run_jobs=False)

    with TestClient(app) as client:
        yield client


@pytest.fixture
def sign_in(api_client):
    """Complete a primary login through the HTTP API and return the session token."""

    def _sign_in(code: str = "code-jane") -> str:
        url = api_client.post("/auth/login", json={}).json()["url"]
        state = parse_qs(urlparse(url).query)["state"][0]
        response = api_client.get("/callback", params={"code": code, "state": state})
        assert response.status_code == 200
        match = _TOKEN_SCRIPT.search(response.text)
        assert match is not None
        return orjson.loads(match.group(1))

    return _sign_in
