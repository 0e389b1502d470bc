"""FederationService: login orchestration and the runtime it owns.

The service owns every piece of in-memory state (login states, the task
queue, the ESI cache and status) so that a fresh instance is a fresh
process as far as callers can tell.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from structlog import get_logger

from fineauth.auth.state import LoginMode, LoginStateTracker
from fineauth.config.settings import Settings
from fineauth.db.models import Account, Character, CharacterDetails
from fineauth.db.repositories import (
    AccountModifier,
    AccountRepository,
    CharacterRepository,
)
from fineauth.esi.client import ESIClient
from fineauth.esi.models import EsiStatus
from fineauth.esi.queue import TaskQueue
from fineauth.esi.status import StatusPoller
from fineauth.exceptions import (
    InvalidSessionError,
    InvalidStateError,
    NotConfiguredError,
    PermissionDeniedError,
    UnauthorizedError,
    UpstreamError,
    ValidationError,
)
from fineauth.permissions import ADD_CHARACTERS_PERMISSION, PermissionRegistry
from fineauth.services.events import (
    PERMISSIONS_EVENT,
    QUEUE_EVENT,
    STATUS_EVENT,
    EventHub,
)
from fineauth.services.jobs import FederationJobs
from fineauth.services.merge import IdentityMergeResolver, MergeResult
from fineauth.services.schemas import AccountView


logger = get_logger(__name__)

LOGIN_CATEGORY = "login"
PRIMARY_LOGIN_LABEL = "ESI login"
ADD_CHARACTER_PENDING_LABEL = "Add character: Authenticating"

ACCOUNT_DATA_TASKS = (
    ("Sync mail data", "mail"),
    ("Sync skill data", "skills"),
    ("Sync training queue", "training-queue"),
    ("Sync wallet history", "wallet"),
)


@dataclass(frozen=True)
class LoginOutcome:
    mode: LoginMode
    result: MergeResult


class FederationService:
    """Composes the state tracker, ESI client, queue and merge resolver."""

    def __init__(
        self,
        settings: Settings,
        client: ESIClient | None = None,
        permissions: PermissionRegistry | None = None,
        hub: EventHub | None = None,
        modifiers: Sequence[AccountModifier] = (),
    ):
        self.settings = settings
        self.hub = hub or EventHub()
        self.client = client or ESIClient(settings.esi)
        self.permissions = permissions or PermissionRegistry(settings.permissions.path)
        self.permissions.on_change = self._publish_permissions
        self.accounts = AccountRepository()
        self.characters = CharacterRepository()

        self.states = LoginStateTracker(ttl_seconds=settings.esi.login_state_ttl_seconds)
        self.queue = TaskQueue(
            estimated_seconds=settings.esi.queue_run_seconds,
            on_change=self._publish_queue,
        )
        self.status_poller = StatusPoller(
            self.client, self.queue, on_update=self._publish_status
        )
        self.resolver = IdentityMergeResolver(
            self.accounts,
            self.characters,
            enricher=self._enrich,
            modifiers=modifiers,
        )
        self.jobs = FederationJobs(self)
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def status(self) -> EsiStatus:
        return self.status_poller.status

    async def start(self, run_jobs: bool = True) -> None:
        if run_jobs:
            await self.jobs.start()
        logger.info(
            "federation_service_started",
            esi_configured=self.settings.esi.is_configured,
        )

    async def shutdown(self) -> None:
        await self.jobs.stop()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
        await self.queue.clear()
        await self.states.clear()
        await self.client.aclose()
        logger.info("federation_service_stopped")

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    async def _publish_queue(self) -> None:
        self.hub.publish(QUEUE_EVENT, self.queue.payload())

    def _publish_status(self, status: EsiStatus) -> None:
        self.hub.publish(STATUS_EVENT, status.model_dump(mode="json"))

    def _publish_permissions(self, permission: str, account_name: str, enabled: bool) -> None:
        self.hub.publish(
            PERMISSIONS_EVENT,
            {"permission": permission, "account_name": account_name, "enabled": enabled},
        )

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # Sessions and permissions
    # ------------------------------------------------------------------

    async def resolve_session(self, token: str | None) -> Account:
        """Resolve a bearer token or raise 401."""
        if not token or not token.strip():
            raise UnauthorizedError()
        account = await self.accounts.resolve_by_access_token(token)
        if account is None:
            raise InvalidSessionError()
        return account

    def can_add_characters(self, account_name: str) -> bool:
        if self.settings.characters.allow_all_members:
            return True
        return self.permissions.has_permission(account_name, ADD_CHARACTERS_PERMISSION)

    async def account_view(self, account: Account) -> AccountView:
        assert account.id is not None
        characters = await self.characters.list_for_account(account.id)
        return AccountView.from_model(
            account,
            characters,
            is_admin=self.permissions.is_admin(account.display_name),
        )

    async def list_accounts(self, account: Account) -> list[AccountView]:
        """All accounts, newest first; admin only."""
        if not self.permissions.is_admin(account.display_name):
            raise PermissionDeniedError("Admin access required.")
        views = []
        for other in await self.accounts.list_all():
            views.append(await self.account_view(other))
        return views

    # ------------------------------------------------------------------
    # Login flow
    # ------------------------------------------------------------------

    async def begin_login(
        self,
        mode: LoginMode | str = LoginMode.PRIMARY,
        session_token: str | None = None,
    ) -> str:
        """Issue a login state and return the provider authorize URL.

        Raises:
            NotConfiguredError: SSO credentials are missing
            UnauthorizedError: add-character without a session token
            InvalidSessionError: add-character with an unknown session token
            PermissionDeniedError: account may not add characters
        """
        if not self.settings.esi.is_configured:
            raise NotConfiguredError()

        try:
            login_mode = LoginMode(mode)
        except ValueError as e:
            raise ValidationError(f"Unknown login mode: {mode}") from e

        account: Account | None = None
        if login_mode is LoginMode.ADD_CHARACTER:
            account = await self.resolve_session(session_token)
            if not self.can_add_characters(account.display_name):
                raise PermissionDeniedError("You do not have permission to add characters.")

        state = await self.states.issue(
            login_mode,
            bound_account_id=account.id if account else None,
            bound_account_name=account.display_name if account else None,
        )
        logger.info(
            "login_started",
            mode=str(login_mode),
            account_name=account.display_name if account else None,
        )
        return self.client.authorize_url(state)

    async def handle_callback(self, code: str | None, state: str | None) -> LoginOutcome:
        """Complete a login from the provider's redirect.

        Raises:
            InvalidStateError: missing code, or unknown/used/expired state
            ProviderExchangeFailedError: code exchange failed
            ProviderVerifyFailedError: token verification failed
            AccountNotFoundError: add-character target account is gone
        """
        if not code or not state:
            logger.warning("login_callback_incomplete", has_code=bool(code), has_state=bool(state))
            raise InvalidStateError("Invalid ESI callback.")

        login = await self.states.consume(state)
        label = (
            ADD_CHARACTER_PENDING_LABEL
            if login.mode is LoginMode.ADD_CHARACTER
            else PRIMARY_LOGIN_LABEL
        )

        async with self.queue.track(
            label, owner=login.bound_account_name, category=LOGIN_CATEGORY
        ) as task:
            tokens = await self.client.exchange_code(code)
            identity = await self.client.verify(tokens.access_token)
            if login.mode is LoginMode.ADD_CHARACTER:
                await self.queue.update_label(
                    task.id, f"Add character: {identity.character_name}"
                )
            result = await self.resolver.resolve(identity, login, tokens.refresh_token)

        logger.info(
            "login_completed",
            mode=str(login.mode),
            account_name=result.account.display_name,
            character_name=identity.character_name,
            created=result.created,
        )
        return LoginOutcome(mode=login.mode, result=result)

    async def _enrich(self, name: str, character_id: int | None) -> CharacterDetails:
        return await self.client.fetch_character_details(name, character_id, cache=True)

    # ------------------------------------------------------------------
    # Account data
    # ------------------------------------------------------------------

    async def refresh_characters(self, account: Account) -> list[Character]:
        """Re-fetch affiliation data for every character of an account."""
        assert account.id is not None
        characters = await self.characters.list_for_account(account.id)
        if not characters:
            return []

        async with self.queue.track(
            "Refresh character details",
            owner=account.display_name,
            category="characters",
        ):
            await self._refresh_details(characters)

        return await self.characters.list_for_account(account.id)

    async def _refresh_details(self, characters: list[Character]) -> int:
        updated = 0
        for character in characters:
            assert character.id is not None
            details = await self.client.fetch_character_details(
                character.display_name, character.external_id, cache=False
            )
            if await self.characters.update_details(character.id, details) is not None:
                updated += 1
        return updated

    async def queue_account_data_requests(self, account_name: str) -> list[int]:
        """Queue the account's data sync tasks; each clears after the run estimate."""
        if not account_name:
            return []
        task_ids = []
        for label, category in ACCOUNT_DATA_TASKS:
            task = await self.queue.enqueue(label, owner=account_name, category=category)
            task_ids.append(task.id)
            self._spawn(self._complete_later(task.id))
        return task_ids

    async def _complete_later(self, task_id: int) -> None:
        try:
            await asyncio.sleep(self.queue.estimated_seconds)
        finally:
            await self.queue.complete(task_id)

    # ------------------------------------------------------------------
    # Scheduled work
    # ------------------------------------------------------------------

    async def refresh_provider_tokens(self) -> int:
        """Best-effort refresh of every stored provider refresh token."""
        refreshed = 0
        async with self.queue.track("Refresh ESI tokens"):
            for account in await self.accounts.list_with_refresh_tokens():
                assert account.id is not None and account.provider_refresh_token
                try:
                    tokens = await self.client.refresh(account.provider_refresh_token)
                except (UpstreamError, httpx.HTTPError) as e:
                    logger.warning(
                        "provider_token_refresh_failed",
                        account_name=account.display_name,
                        error=str(e),
                    )
                    continue
                if tokens.refresh_token:
                    await self.accounts.update_provider_refresh_token(
                        account.id, tokens.refresh_token
                    )
                refreshed += 1

        logger.info("provider_tokens_refreshed", count=refreshed)
        return refreshed

    async def verify_character_names(self) -> int:
        """Re-check affiliation data for every known character."""
        async with self.queue.track("Verify character names"):
            updated = await self._refresh_details(await self.characters.list_all())
        logger.info("character_names_verified", count=updated)
        return updated

    async def sweep_login_states(self) -> int:
        return await self.states.sweep()
