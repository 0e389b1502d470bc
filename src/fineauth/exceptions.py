"""Consolidated exception hierarchy for FineAuth.

Every error carries an ``error_type`` code and the HTTP status the API layer
answers with. Upstream errors additionally carry the provider's own status
code and response text for diagnosis.
"""

from enum import StrEnum
from typing import Any

from starlette import status


class ErrorType(StrEnum):
    """Error type codes for API responses."""

    NOT_CONFIGURED = "not_configured"
    UNAUTHORIZED = "unauthorized"
    INVALID_SESSION = "invalid_session"
    PERMISSION = "permission_denied"
    INVALID_STATE = "invalid_state"
    CHARACTER_CONFLICT = "character_conflict"
    LOGIN_CAPACITY = "login_capacity"
    PROVIDER_EXCHANGE_FAILED = "provider_exchange_failed"
    PROVIDER_VERIFY_FAILED = "provider_verify_failed"
    UPSTREAM = "upstream_error"
    NOT_FOUND = "not_found"
    ACCOUNT_NOT_FOUND = "account_not_found"
    INVALID_REQUEST = "invalid_request"
    INTERNAL_SERVER = "internal_server_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class FineAuthError(Exception):
    """Base exception for all FineAuth errors."""

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType = ErrorType.INTERNAL_SERVER,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(FineAuthError):
    """Raised when configuration loading or validation fails."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            error_type=ErrorType.NOT_CONFIGURED,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class NotConfiguredError(ConfigurationError):
    """Provider credentials are missing; the login feature is unavailable."""

    def __init__(self, message: str = "ESI SSO is not configured.") -> None:
        super().__init__(message)


# ============================================================================
# Authentication & Security Errors
# ============================================================================


class UnauthorizedError(FineAuthError):
    """No usable session token was presented (401)."""

    def __init__(
        self,
        message: str = "Missing session token.",
        *,
        error_type: ErrorType = ErrorType.UNAUTHORIZED,
    ) -> None:
        super().__init__(
            message,
            error_type=error_type,
            status_code=status.HTTP_401_UNAUTHORIZED,
        )


class InvalidSessionError(UnauthorizedError):
    """The presented session token does not resolve to an account."""

    def __init__(self, message: str = "Invalid session token.") -> None:
        super().__init__(message, error_type=ErrorType.INVALID_SESSION)


class PermissionDeniedError(FineAuthError):
    """The account lacks the permission for the requested operation (403)."""

    def __init__(self, message: str = "Permission denied.") -> None:
        super().__init__(
            message,
            error_type=ErrorType.PERMISSION,
            status_code=status.HTTP_403_FORBIDDEN,
        )


class SecurityViolation(FineAuthError):
    """Base class for rejected security-sensitive requests."""


class InvalidStateError(SecurityViolation):
    """OAuth state is unknown, expired, or was already consumed."""

    def __init__(self, message: str = "Invalid or expired login state.") -> None:
        super().__init__(
            message,
            error_type=ErrorType.INVALID_STATE,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


class CharacterOwnershipError(SecurityViolation):
    """The character is already linked to a different account (409)."""

    def __init__(self, character_name: str) -> None:
        super().__init__(
            f"{character_name} is already linked to another account.",
            error_type=ErrorType.CHARACTER_CONFLICT,
            status_code=status.HTTP_409_CONFLICT,
        )
        self.character_name = character_name


class LoginCapacityError(FineAuthError):
    """Too many logins are pending; new ones are refused until some expire."""

    def __init__(self, message: str = "Too many pending logins, try again later.") -> None:
        super().__init__(
            message,
            error_type=ErrorType.LOGIN_CAPACITY,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


# ============================================================================
# Upstream (provider) Errors
# ============================================================================


class UpstreamError(FineAuthError):
    """The identity provider or its data API answered with a failure."""

    def __init__(
        self,
        message: str,
        *,
        upstream_status: int | None = None,
        response_text: str | None = None,
        error_type: ErrorType = ErrorType.UPSTREAM,
    ) -> None:
        details: dict[str, Any] = {}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(
            message,
            error_type=error_type,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details,
        )
        self.upstream_status = upstream_status
        self.response_text = response_text


class ProviderExchangeFailedError(UpstreamError):
    """Exchanging the authorization code (or refresh token) failed."""

    def __init__(
        self,
        message: str = "Failed to exchange ESI code.",
        *,
        upstream_status: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(
            message,
            upstream_status=upstream_status,
            response_text=response_text,
            error_type=ErrorType.PROVIDER_EXCHANGE_FAILED,
        )


class ProviderVerifyFailedError(UpstreamError):
    """Verifying the access token to obtain the character identity failed."""

    def __init__(
        self,
        message: str = "Failed to verify ESI token.",
        *,
        upstream_status: int | None = None,
        response_text: str | None = None,
    ) -> None:
        super().__init__(
            message,
            upstream_status=upstream_status,
            response_text=response_text,
            error_type=ErrorType.PROVIDER_VERIFY_FAILED,
        )


# ============================================================================
# Lookup Errors
# ============================================================================


class NotFoundError(FineAuthError):
    """Not found error (404)."""

    def __init__(
        self,
        message: str = "Resource not found",
        *,
        error_type: ErrorType = ErrorType.NOT_FOUND,
    ) -> None:
        super().__init__(
            message,
            error_type=error_type,
            status_code=status.HTTP_404_NOT_FOUND,
        )


class AccountNotFoundError(NotFoundError):
    """The account bound to a login state no longer exists."""

    def __init__(self, account_id: int | None = None) -> None:
        message = (
            f"Account {account_id} not found for character add."
            if account_id is not None
            else "Account not found for character add."
        )
        super().__init__(message, error_type=ErrorType.ACCOUNT_NOT_FOUND)
        self.account_id = account_id


class ValidationError(FineAuthError):
    """Malformed request data (400)."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            error_type=ErrorType.INVALID_REQUEST,
            status_code=status.HTTP_400_BAD_REQUEST,
        )


__all__ = [
    "ErrorType",
    "FineAuthError",
    "ConfigurationError",
    "NotConfiguredError",
    "UnauthorizedError",
    "InvalidSessionError",
    "PermissionDeniedError",
    "SecurityViolation",
    "InvalidStateError",
    "CharacterOwnershipError",
    "LoginCapacityError",
    "UpstreamError",
    "ProviderExchangeFailedError",
    "ProviderVerifyFailedError",
    "NotFoundError",
    "AccountNotFoundError",
    "ValidationError",
]
