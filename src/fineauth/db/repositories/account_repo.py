"""Account repository: the token vault.

Session tokens are never stored, only their sha256 digest. Provider refresh
tokens are stored in clear (they are replayed to the provider) next to a
digest used for integrity checks.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from sqlalchemy import delete, func
from sqlmodel import select
from structlog import get_logger

from fineauth.auth.tokens import hash_token
from fineauth.core.validators import normalize_token
from fineauth.db.engine import get_session
from fineauth.db.models import Account, AccountKind, Character, CharacterDetails


logger = get_logger(__name__)


@dataclass(frozen=True)
class AccountDraft:
    """Account record as it will be inserted, passed through the modifiers."""

    kind: str
    display_name: str
    access_token_hash: str
    provider_refresh_token: str | None
    refresh_token_hash: str | None


# Returning None leaves the draft unchanged
AccountModifier = Callable[[AccountDraft], AccountDraft | None]


def apply_modifiers(
    draft: AccountDraft, modifiers: Sequence[AccountModifier]
) -> AccountDraft:
    """Run the ordered modifier pipeline over a draft."""
    for modifier in modifiers:
        draft = modifier(draft) or draft
    return draft


class AccountRepository:
    """Repository for Account operations."""

    async def create(
        self,
        kind: AccountKind | str,
        name: str,
        access_token: str,
        refresh_token: str | None = None,
        characters: Sequence[CharacterDetails] = (),
        modifiers: Sequence[AccountModifier] = (),
        character_refresh_token: str | None = None,
    ) -> Account:
        """Create an account and its initial characters in one transaction."""
        draft = apply_modifiers(
            AccountDraft(
                kind=str(kind),
                display_name=name,
                access_token_hash=hash_token(access_token),
                provider_refresh_token=refresh_token,
                refresh_token_hash=hash_token(refresh_token) if refresh_token else None,
            ),
            modifiers,
        )

        async with get_session() as session:
            account = Account(
                kind=draft.kind,
                display_name=draft.display_name,
                access_token_hash=draft.access_token_hash,
                provider_refresh_token=draft.provider_refresh_token,
                refresh_token_hash=draft.refresh_token_hash,
            )
            session.add(account)
            await session.flush()

            for details in characters:
                session.add(
                    Character(
                        account_id=account.id,
                        display_name=details.name,
                        external_id=details.character_id,
                        corporation_id=details.corporation_id,
                        corporation_name=details.corporation_name,
                        alliance_id=details.alliance_id,
                        alliance_name=details.alliance_name,
                        provider_refresh_token=character_refresh_token,
                    )
                )

            await session.commit()
            await session.refresh(account)

        logger.info(
            "account_created",
            account_id=account.id,
            account_name=account.display_name,
            kind=account.kind,
            characters=len(characters),
        )
        return account

    async def get(self, account_id: int) -> Account | None:
        """Get an account by id."""
        async with get_session() as session:
            return await session.get(Account, account_id)

    async def resolve_by_access_token(self, token: object) -> Account | None:
        """Resolve a bearer session token to its account.

        Empty or malformed tokens are simply not found.
        """
        normalized = normalize_token(token)
        if normalized is None:
            return None

        async with get_session() as session:
            result = await session.execute(
                select(Account).where(Account.access_token_hash == hash_token(normalized))
            )
            return result.scalar_one_or_none()

    async def rotate_tokens(
        self,
        account_id: int,
        access_token: str,
        refresh_token: str | None = None,
    ) -> Account | None:
        """Mint a new session for an account, invalidating the previous one.

        A None refresh token keeps the stored provider refresh token.
        """
        async with get_session() as session:
            account = await session.get(Account, account_id)
            if account is None:
                return None

            account.access_token_hash = hash_token(access_token)
            if refresh_token is not None:
                account.provider_refresh_token = refresh_token
                account.refresh_token_hash = hash_token(refresh_token)
            session.add(account)
            await session.commit()
            await session.refresh(account)

        logger.info("account_tokens_rotated", account_id=account_id)
        return account

    async def update_provider_refresh_token(
        self, account_id: int, refresh_token: str
    ) -> bool:
        """Replace the stored provider refresh token without touching the session."""
        async with get_session() as session:
            account = await session.get(Account, account_id)
            if account is None:
                return False
            account.provider_refresh_token = refresh_token
            account.refresh_token_hash = hash_token(refresh_token)
            session.add(account)
            await session.commit()
            return True

    async def find_account_by_character_name(self, name: str) -> Account | None:
        """Find the account owning a character with this name (any account)."""
        async with get_session() as session:
            result = await session.execute(
                select(Account)
                .join(Character, Character.account_id == Account.id)
                .where(func.lower(Character.display_name) == name.lower())
                .order_by(Account.id)
                .limit(1)
            )
            return result.scalars().first()

    async def find_account_by_account_name(self, name: str) -> Account | None:
        """Find an account by its own display name."""
        async with get_session() as session:
            result = await session.execute(
                select(Account)
                .where(func.lower(Account.display_name) == name.lower())
                .order_by(Account.id)
                .limit(1)
            )
            return result.scalars().first()

    async def list_all(self) -> list[Account]:
        """List all accounts, newest first."""
        async with get_session() as session:
            result = await session.execute(
                select(Account).order_by(Account.created_at.desc(), Account.id.desc())  # type: ignore[attr-defined,union-attr]
            )
            return list(result.scalars().all())

    async def list_with_refresh_tokens(self) -> list[Account]:
        """List accounts that hold a provider refresh token."""
        async with get_session() as session:
            result = await session.execute(
                select(Account).where(Account.provider_refresh_token.is_not(None))  # type: ignore[union-attr]
            )
            return list(result.scalars().all())

    async def delete(self, account_id: int) -> bool:
        """Delete an account and its characters. Returns True if deleted."""
        async with get_session() as session:
            account = await session.get(Account, account_id)
            if account is None:
                return False
            await session.execute(
                delete(Character).where(Character.account_id == account_id)  # type: ignore[arg-type]
            )
            await session.delete(account)
            await session.commit()

        logger.info("account_deleted", account_id=account_id)
        return True


__all__ = ["AccountDraft", "AccountModifier", "AccountRepository", "apply_modifiers"]
