"""
Ticket creation for a single work item.

Shared by the bulk runner, the test-ticket command and the single-ticket
HTTP endpoint. This is the item boundary: whatever goes wrong in here comes
back as an ItemResult, never as an exception.
"""

from dataclasses import dataclass
from typing import Any

from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.models.domain.job_domain import ItemResult, WorkItem
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.errors import ZohoMalformedResponseError, parse_error
from bulkdesk.services.ticket_log import TicketLog
from bulkdesk.services.zoho_desk_service import ZohoDeskService

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TicketOutcome:
    """Item result plus the created ticket (None when creation failed)."""

    result: ItemResult
    ticket: dict[str, Any] | None = None

    @property
    def created(self) -> bool:
        return self.ticket is not None


class TicketService:
    """Create one ticket and, optionally, send the direct reply on it."""

    def __init__(self, desk_service: ZohoDeskService, ticket_log: TicketLog):
        self._desk = desk_service
        self._ticket_log = ticket_log

    async def create_ticket(self, profile: Profile, item: WorkItem) -> TicketOutcome:
        try:
            ticket = await self._desk.create_ticket(
                profile, item.email, item.subject, item.description
            )
        except Exception as e:
            info = parse_error(e)
            logger.warning(
                "Ticket creation failed",
                profile_name=profile.profile_name,
                email=item.email,
                error=info.message,
            )
            return TicketOutcome(
                ItemResult(
                    email=item.email,
                    success=False,
                    error=info.message,
                    full_response=info.full_response,
                )
            )

        ticket_number = ticket.get("ticketNumber")
        self._ticket_log.append(ticket_number, item.email)

        details = f"Ticket #{ticket_number} created."
        full_response: dict[str, Any] = {"ticketCreate": ticket}

        if item.send_direct_reply:
            details, full_response["sendReply"] = await self._send_reply(
                profile, ticket, item
            )

        return TicketOutcome(
            ItemResult(
                email=item.email,
                success=True,
                ticket_number=ticket_number,
                details=details,
                full_response=full_response,
            ),
            ticket,
        )

    async def _send_reply(
        self, profile: Profile, ticket: dict[str, Any], item: WorkItem
    ) -> tuple[str, Any]:
        """
        Send the direct reply. A failure here degrades the item to a partial
        success: the ticket exists, only the reply is missing.
        """
        ticket_number = ticket.get("ticketNumber")
        try:
            ticket_id = ticket.get("id")
            if not ticket_id:
                raise ZohoMalformedResponseError(
                    "Ticket response did not include an id.", full_response=ticket
                )
            reply = await self._desk.send_reply(profile, ticket_id, item.email, item.description)
        except Exception as e:
            info = parse_error(e)
            logger.warning(
                "Direct reply failed",
                profile_name=profile.profile_name,
                ticket_number=ticket_number,
                error=info.message,
            )
            return (
                f"Ticket #{ticket_number} created, but reply failed: {info.message}",
                {"error": info.to_dict()},
            )

        return f"Ticket #{ticket_number} created and reply sent.", reply
