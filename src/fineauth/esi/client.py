"""EVE SSO and ESI HTTP client.

Token exchange, verification and refresh always go to the network; data
lookups used for enrichment go through the :class:`ExternalCallCache`.
"""

import base64
from typing import Any
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fineauth.config.esi import ESISettings
from fineauth.db.models import CharacterDetails
from fineauth.esi.cache import ExternalCallCache
from fineauth.esi.models import TokenResponse, VerifiedIdentity
from fineauth.exceptions import (
    NotConfiguredError,
    ProviderExchangeFailedError,
    ProviderVerifyFailedError,
    UpstreamError,
)


logger = get_logger(__name__)

MAX_REFRESH_ATTEMPTS = 3
ERROR_TEXT_LIMIT = 500


def _error_text(response: httpx.Response) -> str:
    return response.text[:ERROR_TEXT_LIMIT]


class ESIClient:
    """Client for the EVE SSO endpoints and the ESI data API."""

    def __init__(
        self,
        settings: ESISettings,
        http_client: httpx.AsyncClient | None = None,
        cache: ExternalCallCache | None = None,
    ):
        self.settings = settings
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=settings.http_timeout
        )
        self.cache = cache or ExternalCallCache(
            self._http_client, default_ttl_seconds=settings.cache_seconds
        )

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    # ------------------------------------------------------------------
    # SSO
    # ------------------------------------------------------------------

    def authorize_url(self, state: str) -> str:
        """Build the provider authorize URL for a login state."""
        if not self.settings.is_configured:
            raise NotConfiguredError()
        query = urlencode(
            {
                "response_type": "code",
                "redirect_uri": self.settings.callback_url,
                "client_id": self.settings.client_id,
                "scope": " ".join(self.settings.scopes),
                "state": state,
            }
        )
        return f"{self.settings.authorize_url}?{query}"

    def _basic_auth_header(self) -> str:
        if not self.settings.is_configured:
            raise NotConfiguredError()
        credentials = f"{self.settings.client_id}:{self.settings.client_secret}"
        return "Basic " + base64.b64encode(credentials.encode()).decode()

    async def _post_token(self, data: dict[str, str], operation: str) -> TokenResponse:
        headers = {
            "Authorization": self._basic_auth_header(),
            "Content-Type": "application/x-www-form-urlencoded",
        }
        try:
            response = await self._http_client.post(
                self.settings.token_url, data=data, headers=headers
            )
        except httpx.TransportError as e:
            logger.error(f"esi_{operation}_transport_error", error=str(e))
            raise
        if response.status_code != 200:
            logger.error(
                f"esi_{operation}_failed",
                status=response.status_code,
                error=_error_text(response),
            )
            raise ProviderExchangeFailedError(
                upstream_status=response.status_code,
                response_text=_error_text(response),
            )
        try:
            return TokenResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise ProviderExchangeFailedError(
                upstream_status=response.status_code,
                response_text=str(e),
            ) from e

    async def exchange_code(self, code: str) -> TokenResponse:
        """Exchange an authorization code for tokens.

        Raises:
            ProviderExchangeFailedError: Provider rejected the code or was unreachable
        """
        try:
            return await self._post_token(
                {"grant_type": "authorization_code", "code": code},
                "token_exchange",
            )
        except httpx.TransportError as e:
            raise ProviderExchangeFailedError(response_text=str(e)) from e

    async def verify(self, access_token: str) -> VerifiedIdentity:
        """Resolve an access token to the character it belongs to.

        Raises:
            ProviderVerifyFailedError: Verification failed or was unreachable
        """
        try:
            response = await self._http_client.get(
                self.settings.verify_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.TransportError as e:
            logger.error("esi_verify_transport_error", error=str(e))
            raise ProviderVerifyFailedError(response_text=str(e)) from e

        if response.status_code != 200:
            logger.error(
                "esi_verify_failed",
                status=response.status_code,
                error=_error_text(response),
            )
            raise ProviderVerifyFailedError(
                upstream_status=response.status_code,
                response_text=_error_text(response),
            )
        try:
            return VerifiedIdentity.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise ProviderVerifyFailedError(
                upstream_status=response.status_code,
                response_text=str(e),
            ) from e

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Trade a refresh token for a new token pair.

        Transport errors are retried with exponential backoff; a provider
        rejection is raised immediately.

        Raises:
            ProviderExchangeFailedError: Provider rejected the refresh token
            httpx.TransportError: Provider unreachable after all attempts
        """
        async for attempt in AsyncRetrying(
            wait=wait_exponential(multiplier=1, min=1, max=10),
            stop=stop_after_attempt(MAX_REFRESH_ATTEMPTS),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return await self._post_token(
                    {"grant_type": "refresh_token", "refresh_token": refresh_token},
                    "token_refresh",
                )
        raise AssertionError("unreachable")  # pragma: no cover

    # ------------------------------------------------------------------
    # ESI data
    # ------------------------------------------------------------------

    def esi_url(self, path: str, **params: Any) -> str:
        """Build an ESI URL with the configured datasource."""
        query = urlencode({**params, "datasource": self.settings.datasource})
        return f"{self.settings.base_url.rstrip('/')}/{path.strip('/')}/?{query}"

    async def fetch_character_details(
        self,
        name: str,
        character_id: int | None = None,
        cache: bool = True,
    ) -> CharacterDetails:
        """Look up a character's corporation and alliance.

        Never raises for upstream failures: whatever was resolved before the
        failure is returned with ``enriched=False``.
        """
        details = CharacterDetails(name=name, character_id=character_id)
        try:
            if details.character_id is None:
                search = await self.cache.fetch_cached(
                    self.esi_url(
                        "search", categories="character", search=name, strict="true"
                    ),
                    cache=cache,
                )
                matches = search.get("character") if isinstance(search, dict) else None
                if not isinstance(matches, list) or not matches:
                    logger.info("esi_character_not_found", character_name=name)
                    return details
                details.character_id = int(matches[0])

            character = await self.cache.fetch_cached(
                self.esi_url(f"characters/{details.character_id}"), cache=cache
            )
            details.corporation_id = character.get("corporation_id")
            details.alliance_id = character.get("alliance_id")

            if details.corporation_id:
                corporation = await self.cache.fetch_cached(
                    self.esi_url(f"corporations/{details.corporation_id}"), cache=cache
                )
                details.corporation_name = corporation.get("name")
            if details.alliance_id:
                alliance = await self.cache.fetch_cached(
                    self.esi_url(f"alliances/{details.alliance_id}"), cache=cache
                )
                details.alliance_name = alliance.get("name")
        except (
            UpstreamError,
            httpx.HTTPError,
            ValueError,
            TypeError,
            KeyError,
            AttributeError,
        ) as e:
            logger.warning(
                "esi_character_details_failed",
                character_name=name,
                error=str(e),
            )
            return details

        details.enriched = True
        return details

    async def fetch_status(self) -> dict[str, Any]:
        """Fetch the ESI server status, bypassing the cache."""
        data: dict[str, Any] = await self.cache.fetch_cached(
            self.esi_url("status"), cache=False
        )
        return data
