"""Login state and session token handling."""

from fineauth.auth.state import LoginMode, LoginState, LoginStateTracker
from fineauth.auth.tokens import generate_session_token, hash_token


__all__ = [
    "LoginMode",
    "LoginState",
    "LoginStateTracker",
    "generate_session_token",
    "hash_token",
]
