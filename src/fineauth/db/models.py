"""SQLModel database models."""

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import Index, func
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC)


class AccountKind(StrEnum):
    """How an account was first created."""

    SERVICE_LOGIN = "service-login"
    FEDERATED = "federated"


class Account(SQLModel, table=True):
    """Local principal that one or more characters are merged into."""

    __tablename__ = "accounts"

    id: int | None = Field(default=None, primary_key=True)
    kind: str = Field(default=AccountKind.FEDERATED.value)
    display_name: str = Field(index=True)

    # sha256 of the current session token; sole key for session resolution
    access_token_hash: str = Field(unique=True, index=True)

    # Replayed to the provider later, so stored in clear; hash kept for integrity checks
    provider_refresh_token: str | None = None
    refresh_token_hash: str | None = None

    created_at: datetime = Field(default_factory=utcnow)


class Character(SQLModel, table=True):
    """Verified provider identity bound to exactly one account."""

    __tablename__ = "characters"

    id: int | None = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="accounts.id", ondelete="CASCADE", index=True)
    display_name: str = Field(index=True)
    external_id: int | None = Field(default=None, index=True)

    corporation_id: int | None = None
    corporation_name: str | None = None
    alliance_id: int | None = None
    alliance_name: str | None = None

    provider_refresh_token: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


# (account_id, display_name) is unique case-insensitively
Index(
    "uq_characters_account_lower_name",
    Character.__table__.c.account_id,  # type: ignore[attr-defined]
    func.lower(Character.__table__.c.display_name),  # type: ignore[attr-defined]
    unique=True,
)


class CharacterDetails(SQLModel):
    """Character identity plus best-effort enrichment, not a table.

    ``enriched`` is True only when the character record and every
    affiliation name lookup succeeded, so the affiliation fields can be
    trusted as authoritative (an absent alliance really means none).
    """

    name: str
    character_id: int | None = None
    corporation_id: int | None = None
    corporation_name: str | None = None
    alliance_id: int | None = None
    alliance_name: str | None = None
    enriched: bool = False
