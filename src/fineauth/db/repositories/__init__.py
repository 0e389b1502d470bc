"""Repository layer for database operations."""

from fineauth.db.repositories.account_repo import (
    AccountDraft,
    AccountModifier,
    AccountRepository,
)
from fineauth.db.repositories.character_repo import CharacterRepository


__all__ = ["AccountDraft", "AccountModifier", "AccountRepository", "CharacterRepository"]
