"""One-time OAuth state values tied to a login intent.

A state is PENDING from ``issue()`` until it is either consumed by the
callback or dropped by the TTL sweep. Lookup and removal happen under one
lock, so a replayed or concurrently duplicated callback can only win once.
"""

import asyncio
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from cachetools import TTLCache
from structlog import get_logger

from fineauth.config.esi import MIN_LOGIN_STATE_TTL_SECONDS
from fineauth.exceptions import InvalidStateError, LoginCapacityError


logger = get_logger(__name__)

STATE_TOKEN_BYTES = 32
MAX_PENDING_LOGINS = 10000


class LoginMode(StrEnum):
    """What a completed login should do with the verified character."""

    PRIMARY = "primary-login"
    ADD_CHARACTER = "add-character"

    @classmethod
    def _missing_(cls, value: object) -> "LoginMode | None":
        # Older clients send the bare "primary"
        if value == "primary":
            return cls.PRIMARY
        return None


@dataclass(frozen=True)
class LoginState:
    """A pending login intent."""

    state: str
    mode: LoginMode
    bound_account_id: int | None = None
    bound_account_name: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class LoginStateTracker:
    """Issues and consumes single-use OAuth state values."""

    def __init__(
        self,
        ttl_seconds: int = MIN_LOGIN_STATE_TTL_SECONDS,
        timer: Callable[[], float] = time.monotonic,
        maxsize: int = MAX_PENDING_LOGINS,
    ):
        self.ttl_seconds = max(ttl_seconds, MIN_LOGIN_STATE_TTL_SECONDS)
        self._pending: TTLCache[str, LoginState] = TTLCache(
            maxsize=maxsize, ttl=self.ttl_seconds, timer=timer
        )
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._pending)

    async def issue(
        self,
        mode: LoginMode,
        bound_account_id: int | None = None,
        bound_account_name: str | None = None,
    ) -> str:
        """Create a pending login and return its state value.

        Raises:
            LoginCapacityError: ``maxsize`` logins are already pending
        """
        if mode is LoginMode.ADD_CHARACTER and bound_account_id is None:
            raise ValueError("add-character logins must be bound to an account")

        state = secrets.token_urlsafe(STATE_TOKEN_BYTES)
        login = LoginState(
            state=state,
            mode=mode,
            bound_account_id=bound_account_id,
            bound_account_name=bound_account_name,
        )
        async with self._lock:
            if len(self._pending) >= self._pending.maxsize:
                self._pending.expire()
            if len(self._pending) >= self._pending.maxsize:
                logger.warning("login_state_capacity_reached", pending=len(self._pending))
                raise LoginCapacityError()
            self._pending[state] = login

        logger.debug("login_state_issued", mode=str(mode), account_name=bound_account_name)
        return state

    async def consume(self, state: str | None) -> LoginState:
        """Take a pending login out of the tracker.

        Raises:
            InvalidStateError: state is unknown, already used or expired
        """
        async with self._lock:
            login = self._pending.pop(state, None) if state else None

        if login is None:
            logger.warning("login_state_rejected", state_prefix=(state or "")[:8])
            raise InvalidStateError()

        logger.debug("login_state_consumed", mode=str(login.mode))
        return login

    async def sweep(self) -> int:
        """Drop expired logins, returning how many were removed."""
        async with self._lock:
            removed = len(self._pending.expire())

        if removed:
            logger.info("login_states_expired", count=removed)
        return removed

    async def clear(self) -> None:
        async with self._lock:
            self._pending.clear()
