"""Tests for FederationService login orchestration and background work."""

import asyncio
from urllib.parse import parse_qs, urlparse

import pytest

from fineauth.auth.state import LoginMode
from fineauth.config.esi import ESISettings
from fineauth.esi.client import ESIClient
from fineauth.exceptions import (
    InvalidSessionError,
    InvalidStateError,
    NotConfiguredError,
    PermissionDeniedError,
    ProviderExchangeFailedError,
    UnauthorizedError,
    ValidationError,
)
from fineauth.permissions import ADD_CHARACTERS_PERMISSION, ADMIN_PERMISSION
from fineauth.services.events import PERMISSIONS_EVENT, QUEUE_EVENT, EventHub
from fineauth.services.federation import ACCOUNT_DATA_TASKS, FederationService


def _state_of(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
async def service(settings, db, esi_client, hub, jane):
    svc = FederationService(settings, client=esi_client, hub=hub)
    yield svc
    await svc.shutdown()


async def _login(service: FederationService, code: str = "code-jane"):
    url = await service.begin_login()
    return await service.handle_callback(code, _state_of(url))


@pytest.mark.asyncio
async def test_begin_login_returns_authorize_url(service):
    url = await service.begin_login()

    query = parse_qs(urlparse(url).query)
    assert query["client_id"] == ["test-client"]
    assert len(service.states) == 1
    assert query["state"][0]


@pytest.mark.asyncio
async def test_begin_login_requires_configuration(settings, db):
    settings.esi = ESISettings(client_id=None, client_secret=None)
    service = FederationService(settings, client=ESIClient(settings.esi))

    with pytest.raises(NotConfiguredError):
        await service.begin_login()

    await service.shutdown()


@pytest.mark.asyncio
async def test_begin_login_rejects_unknown_mode(service):
    with pytest.raises(ValidationError):
        await service.begin_login("sideways")


@pytest.mark.asyncio
async def test_add_character_requires_session(service):
    with pytest.raises(UnauthorizedError):
        await service.begin_login(LoginMode.ADD_CHARACTER)

    with pytest.raises(InvalidSessionError):
        await service.begin_login(LoginMode.ADD_CHARACTER, "not-a-real-token")


@pytest.mark.asyncio
async def test_add_character_requires_permission(service):
    outcome = await _login(service)

    with pytest.raises(PermissionDeniedError) as exc_info:
        await service.begin_login(LoginMode.ADD_CHARACTER, outcome.result.session_token)

    assert exc_info.value.message == "You do not have permission to add characters."
    assert len(service.states) == 0


@pytest.mark.asyncio
async def test_primary_login_end_to_end(service):
    outcome = await _login(service)

    result = outcome.result
    assert outcome.mode is LoginMode.PRIMARY
    assert result.created is True
    assert result.account.display_name == "Jane Doe"
    assert result.account.provider_refresh_token == "refresh-code-jane"
    assert result.character.corporation_name == "Fine Corp"
    assert result.character.alliance_name == "Fine Alliance"

    account = await service.resolve_session(result.session_token)
    assert account.id == result.account.id
    assert len(service.queue) == 0


@pytest.mark.asyncio
async def test_state_is_single_use(service):
    url = await service.begin_login()
    state = _state_of(url)
    await service.handle_callback("code-jane", state)

    with pytest.raises(InvalidStateError):
        await service.handle_callback("code-jane", state)


@pytest.mark.asyncio
@pytest.mark.parametrize("code,state", [(None, "s"), ("code", None), ("", "")])
async def test_incomplete_callback(service, code, state):
    with pytest.raises(InvalidStateError) as exc_info:
        await service.handle_callback(code, state)

    assert exc_info.value.message == "Invalid ESI callback."


@pytest.mark.asyncio
async def test_failed_exchange_consumes_state_and_clears_queue(service, provider):
    url = await service.begin_login()
    provider.token_status = 400

    with pytest.raises(ProviderExchangeFailedError):
        await service.handle_callback("code-jane", _state_of(url))

    assert len(service.queue) == 0
    with pytest.raises(InvalidStateError):
        await service.handle_callback("code-jane", _state_of(url))


@pytest.mark.asyncio
async def test_add_character_end_to_end(service):
    first = await _login(service)
    token = first.result.session_token
    service.permissions.set_account_permission(ADD_CHARACTERS_PERMISSION, "Jane Doe", True)

    url = await service.begin_login(LoginMode.ADD_CHARACTER, token)
    outcome = await service.handle_callback("code-john", _state_of(url))

    assert outcome.mode is LoginMode.ADD_CHARACTER
    assert outcome.result.session_token is None
    assert outcome.result.account.id == first.result.account.id

    view = await service.account_view(await service.resolve_session(token))
    assert [c.name for c in view.characters] == ["Jane Doe", "John Roe"]
    assert len(await service.accounts.list_all()) == 1


@pytest.mark.asyncio
async def test_allow_all_members_skips_permission(service):
    service.settings.characters.allow_all_members = True
    outcome = await _login(service)

    url = await service.begin_login(LoginMode.ADD_CHARACTER, outcome.result.session_token)

    assert _state_of(url)


@pytest.mark.asyncio
async def test_login_publishes_queue_events(service, hub):
    subscriber = hub.subscribe()

    await _login(service)

    events = []
    while not subscriber.empty():
        events.append(subscriber.get_nowait())
    assert [e["event"] for e in events] == [QUEUE_EVENT, QUEUE_EVENT]
    assert events[0]["data"]["items"][0]["label"] == "ESI login"
    assert events[0]["data"]["items"][0]["category"] == "login"
    assert events[-1]["data"]["items"] == []


@pytest.mark.asyncio
async def test_list_accounts_is_admin_only(service):
    outcome = await _login(service)
    account = outcome.result.account

    with pytest.raises(PermissionDeniedError):
        await service.list_accounts(account)

    service.permissions.set_account_permission(ADMIN_PERMISSION, "Jane Doe", True)
    views = await service.list_accounts(account)

    assert [v.name for v in views] == ["Jane Doe"]
    assert views[0].is_admin is True


@pytest.mark.asyncio
async def test_queue_account_data_requests(service):
    task_ids = await service.queue_account_data_requests("Jane Doe")

    snapshot = service.queue.snapshot()
    assert [t.id for t in snapshot] == task_ids
    assert [(t.label, t.category) for t in snapshot] == list(ACCOUNT_DATA_TASKS)
    assert {t.owner_account_name for t in snapshot} == {"Jane Doe"}

    await service.shutdown()
    assert len(service.queue) == 0


@pytest.mark.asyncio
async def test_account_data_tasks_clear_after_run_estimate(service):
    service.queue.estimated_seconds = 0

    await service.queue_account_data_requests("Jane Doe")
    await asyncio.gather(*service._background)

    assert len(service.queue) == 0


@pytest.mark.asyncio
async def test_queue_account_data_requests_needs_owner(service):
    assert await service.queue_account_data_requests("") == []
    assert len(service.queue) == 0


@pytest.mark.asyncio
async def test_refresh_characters_bypasses_cache(service, provider):
    outcome = await _login(service)
    provider.corporations[98000001] = {"name": "Renamed Corp"}

    characters = await service.refresh_characters(outcome.result.account)

    assert [c.corporation_name for c in characters] == ["Renamed Corp"]
    assert len(service.queue) == 0


@pytest.mark.asyncio
async def test_refresh_provider_tokens(service):
    outcome = await _login(service)

    assert await service.refresh_provider_tokens() == 1

    account = await service.accounts.get(outcome.result.account.id)
    assert account.provider_refresh_token == "refresh-code-jane-rotated"
    # The session is untouched
    assert (await service.resolve_session(outcome.result.session_token)).id == account.id


@pytest.mark.asyncio
async def test_refresh_provider_tokens_skips_rejected(service, provider):
    outcome = await _login(service)
    provider.token_status = 400

    assert await service.refresh_provider_tokens() == 0

    account = await service.accounts.get(outcome.result.account.id)
    assert account.provider_refresh_token == "refresh-code-jane"
    assert len(service.queue) == 0


@pytest.mark.asyncio
async def test_verify_character_names_updates_affiliations(service, provider):
    await _login(service)
    provider.characters[90000001]["alliance_id"] = 99000002
    provider.alliances[99000002] = {"name": "Other Alliance"}

    assert await service.verify_character_names() == 1

    (character,) = await service.characters.list_all()
    assert character.alliance_id == 99000002
    assert character.alliance_name == "Other Alliance"


@pytest.mark.asyncio
async def test_shutdown_clears_login_states(service):
    await service.begin_login()
    await service.begin_login()

    await service.shutdown()

    assert len(service.states) == 0


@pytest.mark.asyncio
async def test_permission_change_publishes_event(service, hub):
    subscriber = hub.subscribe()

    service.permissions.set_account_permission(ADD_CHARACTERS_PERMISSION, "Jane Doe", True)
    service.permissions.set_account_permission(ADD_CHARACTERS_PERMISSION, "Jane Doe", True)

    assert subscriber.get_nowait() == {
        "event": PERMISSIONS_EVENT,
        "data": {
            "permission": ADD_CHARACTERS_PERMISSION,
            "account_name": "Jane Doe",
            "enabled": True,
        },
    }
    # Repeating a grant changes nothing and publishes nothing
    assert subscriber.empty()
