"""Database package for SQLite persistence."""

from fineauth.db.engine import dispose_db, get_engine, get_session, init_db
from fineauth.db.models import Account, AccountKind, Character, CharacterDetails


__all__ = [
    "Account",
    "AccountKind",
    "Character",
    "CharacterDetails",
    "dispose_db",
    "get_engine",
    "get_session",
    "init_db",
]
