"""Decides which local account a freshly verified character belongs to."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

import httpx
from structlog import get_logger

from fineauth.auth.state import LoginMode, LoginState
from fineauth.auth.tokens import generate_session_token
from fineauth.db.models import Account, AccountKind, Character, CharacterDetails
from fineauth.db.repositories import (
    AccountModifier,
    AccountRepository,
    CharacterRepository,
)
from fineauth.esi.models import VerifiedIdentity
from fineauth.exceptions import (
    AccountNotFoundError,
    CharacterOwnershipError,
    UpstreamError,
)


logger = get_logger(__name__)

# (character_name, character_id) -> details
Enricher = Callable[[str, int | None], Awaitable[CharacterDetails]]


@dataclass(frozen=True)
class MergeResult:
    account: Account
    character: Character
    created: bool
    # Only set for primary logins; add-character keeps the caller's session
    session_token: str | None = None


class IdentityMergeResolver:
    """Links a verified character to an existing or new account.

    Account lookups and writes run under one lock so concurrent callbacks
    for the same character cannot both create an account. Enrichment
    happens before the lock is taken.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        characters: CharacterRepository,
        enricher: Enricher | None = None,
        modifiers: Sequence[AccountModifier] = (),
    ):
        self.accounts = accounts
        self.characters = characters
        self.enricher = enricher
        self.modifiers = list(modifiers)
        self._lock = asyncio.Lock()

    async def enrich(self, identity: VerifiedIdentity) -> CharacterDetails:
        """Best-effort affiliation lookup; failures yield empty fields."""
        fallback = CharacterDetails(
            name=identity.character_name, character_id=identity.character_id
        )
        if self.enricher is None:
            return fallback
        try:
            details = await self.enricher(identity.character_name, identity.character_id)
        except (UpstreamError, httpx.HTTPError, ValueError) as e:
            logger.warning(
                "character_enrichment_failed",
                character_name=identity.character_name,
                error=str(e),
            )
            return fallback
        if details.character_id is None:
            details.character_id = identity.character_id
        return details

    async def resolve(
        self,
        identity: VerifiedIdentity,
        login: LoginState,
        refresh_token: str | None = None,
    ) -> MergeResult:
        """Attach the identity according to the login's mode.

        Raises:
            AccountNotFoundError: add-character login whose account is gone
            CharacterOwnershipError: add-character for a character owned elsewhere
        """
        details = await self.enrich(identity)

        async with self._lock:
            if login.mode is LoginMode.ADD_CHARACTER:
                return await self._add_character(identity, login, details, refresh_token)
            return await self._primary_login(identity, details, refresh_token)

    async def _add_character(
        self,
        identity: VerifiedIdentity,
        login: LoginState,
        details: CharacterDetails,
        refresh_token: str | None,
    ) -> MergeResult:
        account = (
            await self.accounts.get(login.bound_account_id)
            if login.bound_account_id is not None
            else None
        )
        if account is None or account.id is None:
            raise AccountNotFoundError(login.bound_account_id)

        owner = await self.accounts.find_account_by_character_name(identity.character_name)
        if owner is not None and owner.id != account.id:
            logger.warning(
                "character_owned_elsewhere",
                account_name=account.display_name,
                character_name=identity.character_name,
            )
            raise CharacterOwnershipError(identity.character_name)

        character = await self.characters.upsert(
            account.id, identity.character_name, details, refresh_token=refresh_token
        )
        logger.info(
            "character_linked",
            account_name=account.display_name,
            character_name=identity.character_name,
            mode=str(login.mode),
        )
        return MergeResult(account=account, character=character, created=False)

    async def _primary_login(
        self,
        identity: VerifiedIdentity,
        details: CharacterDetails,
        refresh_token: str | None,
    ) -> MergeResult:
        name = identity.character_name
        session_token = generate_session_token()

        existing = await self.accounts.find_account_by_character_name(name)
        if existing is None:
            existing = await self.accounts.find_account_by_account_name(name)

        if existing is not None and existing.id is not None:
            account = await self.accounts.rotate_tokens(
                existing.id, session_token, refresh_token
            )
            if account is None:
                raise AccountNotFoundError(existing.id)
            character = await self.characters.upsert(
                existing.id, name, details, refresh_token=refresh_token
            )
            logger.info(
                "account_login",
                account_name=account.display_name,
                character_name=name,
            )
            return MergeResult(
                account=account,
                character=character,
                created=False,
                session_token=session_token,
            )

        account = await self.accounts.create(
            AccountKind.FEDERATED,
            name,
            session_token,
            refresh_token=refresh_token,
            characters=[details],
            modifiers=self.modifiers,
            character_refresh_token=refresh_token,
        )
        assert account.id is not None
        character = await self.characters.get_by_name(account.id, name)
        assert character is not None
        return MergeResult(
            account=account,
            character=character,
            created=True,
            session_token=session_token,
        )
