"""
Zoho OAuth service for the refresh-token grant.
Exchanges a profile's stored refresh token for a short-lived access token.
Caching lives in token_cache.py; this module only talks to accounts.zoho.*.
"""

import asyncio

import httpx

from bulkdesk.config import settings
from bulkdesk.infrastructure.observability.logging import get_logger, preview
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.errors import (
    NETWORK_ERROR_MESSAGE,
    ZohoOAuthError,
    error_from_response,
    malformed_success_error,
)

logger = get_logger(__name__)

RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class TokenResponse:
    """Structured representation of a Zoho token response."""

    def __init__(self, data: dict):
        self.raw = data
        self.access_token = data.get("access_token")
        self.token_type = data.get("token_type", "Bearer")
        self.expires_in = int(data.get("expires_in") or 0)
        self.api_domain = data.get("api_domain")
        self.scope = data.get("scope", "")

    def is_valid(self) -> bool:
        """Check if token response contains required fields."""
        return bool(self.access_token)


class ZohoOAuthService:
    """
    Service for the Zoho refresh-token grant.

    Retries transient statuses and transport failures with exponential
    backoff. Refreshing is idempotent on Zoho's side, unlike ticket creation,
    so this is the only outbound call that retries.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        token_url: str | None = None,
        scope: str | None = None,
        max_retries: int | None = None,
        backoff_factor: float | None = None,
    ):
        self._http_client = http_client
        self.token_url = token_url or settings.token_url()
        self.scope = scope or settings.ZOHO_OAUTH_SCOPE
        self.max_retries = max(1, max_retries or settings.ZOHO_OAUTH_MAX_RETRIES)
        self.backoff_factor = (
            settings.ZOHO_OAUTH_BACKOFF_FACTOR if backoff_factor is None else backoff_factor
        )

    async def _post_with_retry(self, data: dict, profile_name: str) -> httpx.Response:
        if self._http_client is not None:
            return await self._post_attempts(self._http_client, data, profile_name)

        async with httpx.AsyncClient(timeout=settings.request_timeout()) as client:
            return await self._post_attempts(client, data, profile_name)

    async def _post_attempts(
        self, client: httpx.AsyncClient, data: dict, profile_name: str
    ) -> httpx.Response:
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await client.post(self.token_url, data=data)

                if response.status_code in RETRY_STATUS_CODES and attempt < self.max_retries:
                    wait_time = self.backoff_factor**attempt
                    logger.warning(
                        "Zoho OAuth transient status",
                        profile_name=profile_name,
                        status_code=response.status_code,
                        attempt=attempt,
                        wait_time=wait_time,
                    )
                    await asyncio.sleep(wait_time)
                    continue

                return response

            except httpx.RequestError as exc:
                if attempt == self.max_retries:
                    raise

                wait_time = self.backoff_factor**attempt
                logger.warning(
                    "Zoho OAuth request error, retrying",
                    profile_name=profile_name,
                    attempt=attempt,
                    wait_time=wait_time,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                await asyncio.sleep(wait_time)

        # Unreachable: the final attempt either returns or raises
        raise ZohoOAuthError("Token refresh failed: retries exhausted")

    async def refresh_access_token(self, profile: Profile) -> TokenResponse:
        """
        Exchange the profile's refresh token for a new access token.

        Raises:
            ZohoOAuthError: If the exchange fails for any reason
        """
        data = {
            "refresh_token": profile.refresh_token,
            "client_id": profile.client_id,
            "client_secret": profile.client_secret,
            "grant_type": "refresh_token",
            "scope": self.scope,
        }

        logger.info(
            "Refreshing Zoho access token",
            profile_name=profile.profile_name,
            client_id_preview=preview(profile.client_id, 12),
        )

        try:
            response = await self._post_with_retry(data, profile.profile_name)
        except httpx.RequestError as e:
            logger.error(
                "Network error during token refresh",
                profile_name=profile.profile_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ZohoOAuthError(NETWORK_ERROR_MESSAGE, full_response=str(e)) from e

        return self._handle_token_response(response, profile.profile_name)

    def _handle_token_response(self, response: httpx.Response, profile_name: str) -> TokenResponse:
        """
        Validate a token endpoint response.

        Zoho reports a bad refresh token with HTTP 200 and an ``error``
        field, so success status alone is not enough.
        """
        if not response.is_success:
            http_error = error_from_response(response)
            logger.error(
                "Zoho token refresh failed",
                profile_name=profile_name,
                status_code=response.status_code,
                error=http_error.message,
            )
            raise ZohoOAuthError(
                http_error.message,
                full_response=http_error.full_response,
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            malformed = malformed_success_error(response)
            logger.error(
                "Zoho token refresh returned non-JSON body",
                profile_name=profile_name,
                response_text=response.text[:200],
            )
            raise ZohoOAuthError(
                malformed.message, full_response=malformed.full_response
            ) from None

        if isinstance(data, dict) and data.get("error"):
            error_code = str(data["error"])
            logger.error(
                "Zoho rejected refresh token",
                profile_name=profile_name,
                error_code=error_code,
            )
            raise ZohoOAuthError(
                self._map_zoho_error(error_code),
                full_response=data,
                status_code=response.status_code,
                error_code=error_code,
            )

        token_response = TokenResponse(data if isinstance(data, dict) else {})
        if not token_response.is_valid():
            logger.error("Zoho token response missing access_token", profile_name=profile_name)
            raise ZohoOAuthError("Failed to retrieve a valid access token.", full_response=data)

        logger.info(
            "Zoho token refresh successful",
            profile_name=profile_name,
            expires_in=token_response.expires_in,
            api_domain=token_response.api_domain,
        )
        return token_response

    def _map_zoho_error(self, error_code: str) -> str:
        """Map Zoho OAuth error codes to messages an operator can act on."""
        error_messages = {
            "invalid_code": "invalid_code: refresh token is invalid, expired or revoked",
            "invalid_client": "invalid_client: client ID does not match the accounts data center",
            "invalid_client_secret": "invalid_client_secret: client secret is wrong",
            "Access Denied": "Access Denied: too many token requests, try again later",
        }
        return error_messages.get(error_code, error_code)
