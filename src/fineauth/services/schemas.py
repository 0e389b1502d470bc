"""Response models shared by the API routes and the push channel."""

from datetime import datetime

from pydantic import BaseModel, Field

from fineauth.auth.state import LoginMode
from fineauth.db.models import Account, Character


class CharacterView(BaseModel):
    id: int | None
    name: str
    character_id: int | None = None
    corporation_id: int | None = None
    corporation_name: str | None = None
    alliance_id: int | None = None
    alliance_name: str | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, character: Character) -> "CharacterView":
        return cls(
            id=character.id,
            name=character.display_name,
            character_id=character.external_id,
            corporation_id=character.corporation_id,
            corporation_name=character.corporation_name,
            alliance_id=character.alliance_id,
            alliance_name=character.alliance_name,
            updated_at=character.updated_at,
        )


class AccountView(BaseModel):
    id: int | None
    name: str
    kind: str
    created_at: datetime | None = None
    characters: list[CharacterView] = Field(default_factory=list)
    is_admin: bool = False

    @classmethod
    def from_model(
        cls,
        account: Account,
        characters: list[Character],
        is_admin: bool = False,
    ) -> "AccountView":
        return cls(
            id=account.id,
            name=account.display_name,
            kind=account.kind,
            created_at=account.created_at,
            characters=sorted(
                (CharacterView.from_model(c) for c in characters),
                key=lambda view: view.name.lower(),
            ),
            is_admin=is_admin,
        )


class SessionResponse(BaseModel):
    account: AccountView


class LoginRequest(BaseModel):
    mode: LoginMode = LoginMode.PRIMARY
    token: str | None = None


class LoginResponse(BaseModel):
    url: str


class CharactersResponse(BaseModel):
    characters: list[CharacterView]


class AccountsResponse(BaseModel):
    accounts: list[AccountView]
