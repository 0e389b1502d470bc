"""Session token minting and hashing."""

import hashlib
import secrets


SESSION_TOKEN_BYTES = 32


def hash_token(token: str) -> str:
    """Deterministic one-way digest used only for equality lookup."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_session_token() -> str:
    """Mint a new unguessable local session token."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)
