"""EVE SSO and ESI configuration settings."""

from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from fineauth.core.validators import parse_comma_separated


# Provider endpoints
ESI_AUTHORIZE_URL = "https://login.eveonline.com/v2/oauth/authorize"
ESI_TOKEN_URL = "https://login.eveonline.com/v2/oauth/token"
ESI_VERIFY_URL = "https://login.eveonline.com/oauth/verify"
ESI_BASE_URL = "https://esi.evetech.net/latest"

# Abandoned logins are purged after this long; provider auth pages can be slow
MIN_LOGIN_STATE_TTL_SECONDS = 600


class ESISettings(BaseSettings):
    """
    Configuration for the EVE SSO login flow and ESI data calls.

    Settings can be configured via environment variables with ESI__ prefix.
    Login is disabled (not the process) while client_id or client_secret is unset.
    """

    model_config = SettingsConfigDict(
        env_prefix="ESI__",
        case_sensitive=False,
        extra="ignore",
    )

    client_id: str | None = Field(default=None, description="SSO application id")
    client_secret: str | None = Field(
        default=None, description="SSO application secret"
    )
    callback_url: str = Field(
        default="http://localhost:3000/callback",
        description="Redirect URI registered with the SSO application",
    )
    scopes: Annotated[list[str], NoDecode] = Field(
        default_factory=list, description="ESI scopes requested at login"
    )

    authorize_url: str = Field(default=ESI_AUTHORIZE_URL)
    token_url: str = Field(default=ESI_TOKEN_URL)
    verify_url: str = Field(default=ESI_VERIFY_URL)
    base_url: str = Field(default=ESI_BASE_URL)
    datasource: str = Field(default="tranquility")

    cache_seconds: int = Field(
        default=45, ge=0, description="Default TTL for cached ESI GET responses"
    )
    queue_run_seconds: int = Field(
        default=12, ge=1, description="Estimated run time per queued ESI task"
    )
    status_refresh_seconds: int = Field(
        default=60, ge=5, description="Interval between ESI status polls"
    )
    refresh_interval_minutes: int = Field(
        default=30, ge=1, description="Interval between provider token refreshes"
    )
    character_name_check_minutes: int = Field(
        default=60, ge=1, description="Interval between character detail checks"
    )
    login_state_ttl_seconds: int = Field(
        default=MIN_LOGIN_STATE_TTL_SECONDS,
        ge=MIN_LOGIN_STATE_TTL_SECONDS,
        description="Lifetime of an unconsumed login state",
    )
    http_timeout: float = Field(default=30.0, gt=0)

    @field_validator("scopes", mode="before")
    @classmethod
    def validate_scopes(cls, v: Any) -> Any:
        if isinstance(v, str):
            return parse_comma_separated(v.replace(" ", ","))
        return v

    @property
    def is_configured(self) -> bool:
        """True when both SSO client credentials are present."""
        return bool(self.client_id and self.client_secret)
