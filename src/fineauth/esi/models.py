"""Pydantic models for EVE SSO and ESI responses."""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    """Token endpoint response."""

    model_config = ConfigDict(extra="ignore")

    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
    token_type: str = "Bearer"


class VerifiedIdentity(BaseModel):
    """Character identity returned by the verify endpoint."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    character_id: int = Field(alias="CharacterID")
    character_name: str = Field(alias="CharacterName")


EsiState = Literal["online", "unavailable", "unknown"]


class EsiStatus(BaseModel):
    """Last known upstream health, published as ``esi:status``."""

    status: EsiState = "unknown"
    players: int | None = None
    server_version: str | None = None
    last_updated: datetime | None = None
    error: str | None = None

    @classmethod
    def online(cls, players: int | None, server_version: str | None) -> "EsiStatus":
        return cls(
            status="online",
            players=players,
            server_version=server_version,
            last_updated=datetime.now(UTC),
        )

    @classmethod
    def unavailable(cls, error: str) -> "EsiStatus":
        return cls(status="unavailable", last_updated=datetime.now(UTC), error=error)
