"""Tests for the FineAuth HTTP API."""

from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from fineauth.api.app import create_app
from fineauth.auth.state import LoginStateTracker
from fineauth.config.esi import ESISettings
from fineauth.permissions import ADD_CHARACTERS_PERMISSION, ADMIN_PERMISSION


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _service(api_client):
    return api_client.app.state.service


def test_health(api_client):
    response = api_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["esi_configured"] is True
    assert data["queue_length"] == 0
    assert response.headers["x-request-id"]


def test_request_id_is_echoed(api_client):
    response = api_client.get("/health", headers={"x-request-id": "req-123"})

    assert response.headers["x-request-id"] == "req-123"


def test_browser_login_redirects_to_provider(api_client):
    response = api_client.get("/auth/login", follow_redirects=False)

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.netloc == "login.eveonline.com"
    assert parse_qs(location.query)["state"][0]


def test_login_and_session(api_client, sign_in):
    token = sign_in()

    response = api_client.get("/session", headers=_bearer(token))

    assert response.status_code == 200
    account = response.json()["account"]
    assert account["name"] == "Jane Doe"
    assert account["kind"] == "federated"
    assert account["is_admin"] is False
    (character,) = account["characters"]
    assert character["name"] == "Jane Doe"
    assert character["character_id"] == 90000001
    assert character["alliance_name"] == "Fine Alliance"


def test_second_login_invalidates_previous_session(api_client, sign_in):
    first = sign_in()
    second = sign_in()

    assert api_client.get("/session", headers=_bearer(first)).status_code == 401
    assert api_client.get("/session", headers=_bearer(second)).status_code == 200


def test_session_requires_token(api_client):
    response = api_client.get("/session")

    assert response.status_code == 401
    assert response.json() == {
        "error": {"type": "unauthorized", "message": "Missing session token."}
    }


def test_session_rejects_unknown_token(api_client):
    response = api_client.get("/session", headers=_bearer("nope"))

    assert response.status_code == 401
    assert response.json()["error"]["type"] == "invalid_session"


def test_callback_with_unknown_state_renders_error(api_client):
    response = api_client.get("/callback", params={"code": "code-jane", "state": "forged"})

    assert response.status_code == 400
    assert response.headers["content-type"].startswith("text/html")
    assert "Invalid or expired login state." in response.text
    assert "localStorage" not in response.text


def test_callback_without_code(api_client):
    response = api_client.get("/callback", params={"state": "whatever"})

    assert response.status_code == 400
    assert "Invalid ESI callback." in response.text


def test_callback_exchange_failure(api_client, provider):
    url = api_client.post("/auth/login", json={}).json()["url"]
    provider.token_status = 500

    response = api_client.get(
        "/callback",
        params={"code": "code-jane", "state": parse_qs(urlparse(url).query)["state"][0]},
    )

    assert response.status_code == 502
    assert "Failed to exchange ESI code." in response.text


def test_add_character_requires_permission(api_client, sign_in):
    token = sign_in()

    response = api_client.post(
        "/auth/login", json={"mode": "add-character"}, headers=_bearer(token)
    )

    assert response.status_code == 403
    assert response.json()["error"]["type"] == "permission_denied"


def test_add_character_without_session(api_client):
    response = api_client.post("/auth/login", json={"mode": "add-character"})

    assert response.status_code == 401


def test_add_character_flow(api_client, sign_in):
    token = sign_in()
    _service(api_client).permissions.set_account_permission(
        ADD_CHARACTERS_PERMISSION, "Jane Doe", True
    )

    url = api_client.post(
        "/auth/login", json={"mode": "add-character", "token": token}
    ).json()["url"]
    response = api_client.get(
        "/callback",
        params={"code": "code-john", "state": parse_qs(urlparse(url).query)["state"][0]},
    )

    assert response.status_code == 200
    assert "/#/module/characters" in response.text
    assert "localStorage" not in response.text

    account = api_client.get("/session", headers=_bearer(token)).json()["account"]
    assert [c["name"] for c in account["characters"]] == ["Jane Doe", "John Roe"]


def test_add_character_owned_by_another_account(api_client, sign_in):
    sign_in("code-john")
    token = sign_in()
    _service(api_client).permissions.set_account_permission(
        ADD_CHARACTERS_PERMISSION, "Jane Doe", True
    )

    url = api_client.post(
        "/auth/login", json={"mode": "add-character", "token": token}
    ).json()["url"]
    response = api_client.get(
        "/callback",
        params={"code": "code-john", "state": parse_qs(urlparse(url).query)["state"][0]},
    )

    assert response.status_code == 409
    assert "already linked to another account" in response.text
    account = api_client.get("/session", headers=_bearer(token)).json()["account"]
    assert [c["name"] for c in account["characters"]] == ["Jane Doe"]


def test_refresh_characters(api_client, sign_in, provider):
    token = sign_in()
    provider.corporations[98000001] = {"name": "Renamed Corp"}

    response = api_client.post("/characters/refresh", headers=_bearer(token))

    assert response.status_code == 200
    (character,) = response.json()["characters"]
    assert character["corporation_name"] == "Renamed Corp"


def test_admin_accounts(api_client, sign_in):
    token = sign_in()
    sign_in("code-john")

    assert api_client.get("/admin/accounts", headers=_bearer(token)).status_code == 403

    _service(api_client).permissions.set_account_permission(ADMIN_PERMISSION, "Jane Doe", True)
    response = api_client.get("/admin/accounts", headers=_bearer(token))

    assert response.status_code == 200
    assert {a["name"] for a in response.json()["accounts"]} == {"Jane Doe", "John Roe"}


def test_esi_status_and_queue(api_client):
    status = api_client.get("/esi/status").json()
    queue = api_client.get("/esi/queue").json()

    assert status["status"] == "unknown"
    assert queue["items"] == []
    assert queue["queue_run_seconds"] == 12


def test_login_disabled_without_credentials(settings):
    settings.esi = ESISettings(client_id=None, client_secret=None)
    app = create_app(settings, run_jobs=False)

    with TestClient(app) as client:
        response = client.post("/auth/login", json={})
        health = client.get("/health").json()

    assert response.status_code == 503
    assert response.json()["error"]["type"] == "not_configured"
    assert health["esi_configured"] is False


def test_login_refused_when_pending_logins_are_full(api_client):
    _service(api_client).states = LoginStateTracker(maxsize=1)

    assert api_client.post("/auth/login", json={}).status_code == 200
    response = api_client.post("/auth/login", json={})

    assert response.status_code == 503
    assert response.json()["error"]["type"] == "login_capacity"
