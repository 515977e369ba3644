"""
Zoho Desk API client.
Attaches a cached access token and the profile's org to every call and
normalizes every failure into the ZohoDeskError taxonomy.
The client never retries: ticket creation is not idempotent, so retry
policy belongs to whoever drives the calls.
"""

from typing import Any

import httpx

from bulkdesk.config import settings
from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.errors import (
    ProfileValidationError,
    ZohoDeskError,
    error_from_response,
    error_from_transport,
    malformed_success_error,
)
from bulkdesk.services.token_cache import TokenCache

logger = get_logger(__name__)

TICKETS_PATH = "/api/v1/tickets"
EMAIL_FAILURE_ALERTS_PATH = "/api/v1/emailFailureAlerts"
MAIL_REPLY_ADDRESS_PATH = "/api/v1/mailReplyAddress"

WORKFLOW_HISTORY = "WorkflowHistory"
NOTIFICATION_RULE_HISTORY = "NotificationRuleHistory"


class ZohoDeskService:
    """
    Service for Zoho Desk API operations.

    Pure API client: authentication, request building and error mapping.
    Orchestration (bulk loops, verification) lives in the jobs package.
    """

    def __init__(
        self,
        token_cache: TokenCache,
        http_client: httpx.AsyncClient | None = None,
        *,
        base_url: str | None = None,
    ):
        self._token_cache = token_cache
        self._http_client = http_client
        self.base_url = (base_url or settings.desk_base_url()).rstrip("/")

    async def _get_auth_headers(self, profile: Profile) -> dict:
        """Authorization + org headers. Raises ZohoOAuthError if no token can be had."""
        token = await self._token_cache.get_valid_token(profile)
        return {
            "Authorization": f"Zoho-oauthtoken {token.access_token}",
            "orgId": profile.org_id,
        }

    async def _send(
        self,
        method: str,
        url: str,
        headers: dict,
        body: dict | None,
        params: dict | None,
    ) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(
                method, url, headers=headers, json=body, params=params
            )

        async with httpx.AsyncClient(timeout=settings.request_timeout()) as client:
            return await client.request(method, url, headers=headers, json=body, params=params)

    async def call(
        self,
        method: str,
        path: str,
        profile: Profile,
        body: dict | None = None,
        params: dict | None = None,
    ) -> dict[str, Any]:
        """
        Issue an authenticated Zoho Desk request.

        Args:
            method: HTTP method
            path: Path relative to the Desk base URL (e.g. "/api/v1/tickets")
            profile: Profile whose token and org are used
            body: JSON body
            params: Query parameters

        Returns:
            dict: Parsed JSON body ({} for an empty body)

        Raises:
            ZohoDeskError: Normalized failure (network, HTTP, malformed, auth)
        """
        method = method.upper()
        headers = await self._get_auth_headers(profile)
        url = f"{self.base_url}{path}"

        try:
            response = await self._send(method, url, headers, body, params)
        except httpx.RequestError as e:
            logger.error(
                "Zoho Desk request got no response",
                method=method,
                path=path,
                profile_name=profile.profile_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise error_from_transport(e) from e

        return self._handle_api_response(response, method, path, profile)

    def _handle_api_response(
        self, response: httpx.Response, method: str, path: str, profile: Profile
    ) -> dict[str, Any]:
        logger.debug(
            "Zoho Desk response",
            method=method,
            path=path,
            status_code=response.status_code,
            response_size=len(response.content),
        )

        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError:
                error = malformed_success_error(response)
                logger.error(
                    "Zoho Desk returned a non-JSON body",
                    method=method,
                    path=path,
                    error=error.message,
                )
                raise error from None

        error = error_from_response(response)

        if response.status_code == 401:
            # The cached token was revoked or rotated; force a refresh next time
            self._token_cache.invalidate(profile.profile_name)

        logger.error(
            "Zoho Desk request failed",
            method=method,
            path=path,
            profile_name=profile.profile_name,
            status_code=response.status_code,
            error=error.message,
        )
        raise error

    async def create_ticket(
        self, profile: Profile, email: str, subject: str, description: str
    ) -> dict[str, Any]:
        """Create an email-channel ticket for ``email`` in the profile's default department."""
        ticket_data = {
            "subject": subject,
            "description": description,
            "departmentId": profile.default_department_id,
            "contact": {"email": email},
            "channel": "Email",
        }
        ticket = await self.call("POST", TICKETS_PATH, profile, body=ticket_data)
        logger.info(
            "Ticket created",
            profile_name=profile.profile_name,
            ticket_id=ticket.get("id"),
            ticket_number=ticket.get("ticketNumber"),
        )
        return ticket

    async def send_reply(
        self, profile: Profile, ticket_id: str, to: str, content: str
    ) -> dict[str, Any]:
        """Send an HTML email reply on an existing ticket from the profile's address."""
        if not profile.from_email_address:
            raise ProfileValidationError(
                f'Profile "{profile.profile_name}" is missing "fromEmailAddress".'
            )

        reply_data = {
            "fromEmailAddress": profile.from_email_address,
            "to": to,
            "content": content,
            "contentType": "html",
            "channel": "EMAIL",
        }
        return await self.call(
            "POST", f"{TICKETS_PATH}/{ticket_id}/sendReply", profile, body=reply_data
        )

    async def get_ticket_history(
        self, profile: Profile, ticket_id: str, event_filter: str
    ) -> dict[str, Any]:
        return await self.call(
            "GET",
            f"{TICKETS_PATH}/{ticket_id}/History",
            profile,
            params={"eventFilter": event_filter},
        )

    async def get_email_failure_alerts(
        self, profile: Profile, limit: int | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"department": profile.default_department_id}
        if limit is not None:
            params["limit"] = limit
        return await self.call("GET", EMAIL_FAILURE_ALERTS_PATH, profile, params=params)

    async def clear_email_failure_alerts(self, profile: Profile) -> dict[str, Any]:
        return await self.call(
            "PATCH",
            EMAIL_FAILURE_ALERTS_PATH,
            profile,
            params={"department": profile.default_department_id},
        )

    async def get_mail_reply_address(self, profile: Profile) -> dict[str, Any]:
        if not profile.mail_reply_address_id:
            raise ProfileValidationError("Mail Reply Address ID is not configured for this profile.")
        return await self.call(
            "GET", f"{MAIL_REPLY_ADDRESS_PATH}/{profile.mail_reply_address_id}", profile
        )

    async def update_mail_reply_address(
        self, profile: Profile, display_name: str
    ) -> dict[str, Any]:
        if not profile.mail_reply_address_id:
            raise ProfileValidationError("Mail Reply Address ID is not configured for this profile.")
        return await self.call(
            "PATCH",
            f"{MAIL_REPLY_ADDRESS_PATH}/{profile.mail_reply_address_id}",
            profile,
            body={"displayName": display_name},
        )

    async def check_connection(self, profile: Profile) -> dict[str, Any]:
        """
        Confirm the profile can obtain an access token.

        Returns the token payload without secrets.
        """
        token = await self._token_cache.get_valid_token(profile)
        return {k: v for k, v in token.data.items() if k not in ("access_token", "refresh_token")}


__all__ = ["ZohoDeskService", "ZohoDeskError", "WORKFLOW_HISTORY", "NOTIFICATION_RULE_HISTORY"]
