"""Character repository for database operations."""

from sqlalchemy import func
from sqlmodel import select
from structlog import get_logger

from fineauth.db.engine import get_session
from fineauth.db.models import Character, CharacterDetails, utcnow


logger = get_logger(__name__)

_ENRICHMENT_FIELDS = (
    "corporation_id",
    "corporation_name",
    "alliance_id",
    "alliance_name",
)


def _apply_details(character: Character, details: CharacterDetails) -> list[str]:
    """Copy changed provider fields onto a character, returning their names.

    Affiliation fields are only trusted from a fully enriched lookup, so a
    failed lookup never wipes known corporation or alliance data.
    """
    changed: list[str] = []

    if details.character_id is not None and details.character_id != character.external_id:
        character.external_id = details.character_id
        changed.append("external_id")

    if details.enriched:
        for field in _ENRICHMENT_FIELDS:
            value = getattr(details, field)
            if getattr(character, field) != value:
                setattr(character, field, value)
                changed.append(field)

    return changed


class CharacterRepository:
    """Repository for Character operations."""

    async def get_by_name(self, account_id: int, name: str) -> Character | None:
        """Get an account's character by name, case-insensitively."""
        async with get_session() as session:
            result = await session.execute(
                select(Character).where(
                    Character.account_id == account_id,
                    func.lower(Character.display_name) == name.lower(),
                )
            )
            return result.scalar_one_or_none()

    async def upsert(
        self,
        account_id: int,
        name: str,
        details: CharacterDetails | None = None,
        refresh_token: str | None = None,
    ) -> Character:
        """Insert a character on an account or update its provider fields.

        The display name and owning account of an existing row never change.
        """
        details = details or CharacterDetails(name=name)

        async with get_session() as session:
            result = await session.execute(
                select(Character).where(
                    Character.account_id == account_id,
                    func.lower(Character.display_name) == name.lower(),
                )
            )
            character = result.scalar_one_or_none()

            if character is None:
                character = Character(
                    account_id=account_id,
                    display_name=name,
                    external_id=details.character_id,
                    corporation_id=details.corporation_id,
                    corporation_name=details.corporation_name,
                    alliance_id=details.alliance_id,
                    alliance_name=details.alliance_name,
                    provider_refresh_token=refresh_token,
                )
                session.add(character)
                await session.commit()
                await session.refresh(character)
                logger.info(
                    "character_added",
                    account_id=account_id,
                    character_name=name,
                )
                return character

            changed = _apply_details(character, details)
            if refresh_token is not None and refresh_token != character.provider_refresh_token:
                character.provider_refresh_token = refresh_token
                changed.append("provider_refresh_token")

            character.updated_at = utcnow()
            session.add(character)
            await session.commit()
            await session.refresh(character)

        if changed:
            logger.info(
                "character_updated",
                account_id=account_id,
                character_name=character.display_name,
                fields=changed,
            )
        return character

    async def update_details(self, character_id: int, details: CharacterDetails) -> Character | None:
        """Apply a fresh enrichment lookup to an existing character."""
        async with get_session() as session:
            character = await session.get(Character, character_id)
            if character is None:
                return None

            changed = _apply_details(character, details)
            character.updated_at = utcnow()
            session.add(character)
            await session.commit()
            await session.refresh(character)

        if changed:
            logger.info(
                "character_details_updated",
                character_name=character.display_name,
                fields=changed,
            )
        return character

    async def list_for_account(self, account_id: int) -> list[Character]:
        """List an account's characters sorted by name."""
        async with get_session() as session:
            result = await session.execute(
                select(Character)
                .where(Character.account_id == account_id)
                .order_by(func.lower(Character.display_name))
            )
            return list(result.scalars().all())

    async def list_all(self) -> list[Character]:
        """List every character."""
        async with get_session() as session:
            result = await session.execute(select(Character).order_by(Character.id))
            return list(result.scalars().all())
