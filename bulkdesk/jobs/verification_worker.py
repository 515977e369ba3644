"""
Post-creation delivery verification.

After a ticket is created Zoho needs a few seconds before its history shows
whether the outbound email went out. Each verification waits that settle
delay, then looks at the ticket's workflow and notification history and,
failing that, the department's email failure alerts.

Verifications run as background tasks capped by a semaphore. Every
submitted ticket gets exactly one update event, whatever happens.
"""

import asyncio
from typing import Any

from bulkdesk.config import settings
from bulkdesk.events.emitter import EventEmitter
from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.jobs.cancellation import CancellationRequestedError, CancellationToken
from bulkdesk.models.api.socket_events import ItemUpdateEvent, SocketEvent
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.errors import VerificationError, parse_error
from bulkdesk.services.zoho_desk_service import (
    NOTIFICATION_RULE_HISTORY,
    WORKFLOW_HISTORY,
    ZohoDeskService,
)

logger = get_logger(__name__)

SENT_MESSAGE = "Sent successfully."
NOT_FOUND_MESSAGE = "Not Found."
CHECK_FAILED_MESSAGE = "Failed to check status."
CANCELLED_MESSAGE = "Cancelled."
QUEUE_FULL_MESSAGE = "Skipped (verification queue full)."
NO_FAILURE_FOUND = "No specific failure found for this ticket."


def verification_details(ticket_number: Any, message: str) -> str:
    return f"Ticket #{ticket_number} created. Email verification: {message}"


class VerificationPool:
    """
    Bounded fan-out of verification tasks.

    At most ``max_concurrent`` verifications talk to Zoho at once; beyond
    ``max_pending`` outstanding tasks new submissions are refused with an
    immediate "skipped" update instead of queueing without limit.
    """

    def __init__(
        self,
        desk_service: ZohoDeskService,
        *,
        settle_delay_seconds: float | None = None,
        max_concurrent: int | None = None,
        max_pending: int | None = None,
    ):
        self._desk = desk_service
        self.settle_delay_seconds = (
            settings.VERIFY_SETTLE_DELAY_SECONDS
            if settle_delay_seconds is None
            else settle_delay_seconds
        )
        self.max_concurrent = max_concurrent or settings.VERIFY_MAX_CONCURRENT
        self.max_pending = max_pending or settings.VERIFY_MAX_PENDING
        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        ticket: dict[str, Any],
        profile: Profile,
        emitter: EventEmitter,
        cancel_token: CancellationToken | None = None,
        event: str = SocketEvent.ITEM_UPDATE,
    ) -> asyncio.Task | None:
        """
        Schedule a verification without waiting for it.

        Returns:
            The background task, or None when the submission was refused
        """
        if len(self._tasks) >= self.max_pending:
            logger.warning(
                "Verification queue full, skipping",
                profile_name=profile.profile_name,
                ticket_number=ticket.get("ticketNumber"),
                pending=len(self._tasks),
            )
            self._emit_update(
                emitter,
                event,
                ticket,
                profile,
                success=False,
                message=QUEUE_FULL_MESSAGE,
                verify_email={"skipped": True},
            )
            return None

        task = asyncio.create_task(self.verify(ticket, profile, emitter, cancel_token, event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def verify(
        self,
        ticket: dict[str, Any],
        profile: Profile,
        emitter: EventEmitter,
        cancel_token: CancellationToken | None = None,
        event: str = SocketEvent.ITEM_UPDATE,
    ) -> None:
        """Run one verification to completion. Emits exactly one update; never raises."""
        token = cancel_token or CancellationToken()
        verify_email: dict[str, Any] = {}

        try:
            if not await token.sleep(self.settle_delay_seconds):
                token.raise_if_cancelled()
            async with self._semaphore:
                token.raise_if_cancelled()
                success, message = await self._check_delivery(ticket, profile, verify_email)

        except CancellationRequestedError:
            success, message = False, CANCELLED_MESSAGE
            verify_email["cancelled"] = True

        except asyncio.CancelledError:
            # Application shutdown
            verify_email["cancelled"] = True
            self._emit_update(
                emitter,
                event,
                ticket,
                profile,
                success=False,
                message=CANCELLED_MESSAGE,
                verify_email=verify_email,
            )
            raise

        except Exception as e:
            info = parse_error(e)
            logger.warning(
                "Email verification lookup failed",
                profile_name=profile.profile_name,
                ticket_number=ticket.get("ticketNumber"),
                error=info.message,
            )
            success, message = False, CHECK_FAILED_MESSAGE
            verify_email["error"] = info.message

        self._emit_update(
            emitter,
            event,
            ticket,
            profile,
            success=success,
            message=message,
            verify_email=verify_email,
        )

    async def _check_delivery(
        self, ticket: dict[str, Any], profile: Profile, verify_email: dict[str, Any]
    ) -> tuple[bool, str]:
        ticket_id = ticket.get("id")
        ticket_number = ticket.get("ticketNumber")
        if not ticket_id:
            raise VerificationError("Ticket has no id to verify.", full_response=ticket)

        workflow_history, notification_history = await asyncio.gather(
            self._desk.get_ticket_history(profile, ticket_id, WORKFLOW_HISTORY),
            self._desk.get_ticket_history(profile, ticket_id, NOTIFICATION_RULE_HISTORY),
        )
        verify_email["history"] = {
            "workflowHistory": workflow_history,
            "notificationHistory": notification_history,
        }

        history_events = [
            *(workflow_history.get("data") or []),
            *(notification_history.get("data") or []),
        ]
        if history_events:
            return True, SENT_MESSAGE

        alerts = await self._desk.get_email_failure_alerts(profile)
        failure = next(
            (
                alert
                for alert in alerts.get("data") or []
                if str(alert.get("ticketNumber")) == str(ticket_number)
            ),
            None,
        )
        verify_email["failure"] = failure or NO_FAILURE_FOUND

        if failure:
            return False, f"Failed. Reason: {failure.get('reason')}"
        return False, NOT_FOUND_MESSAGE

    def _emit_update(
        self,
        emitter: EventEmitter,
        event: str,
        ticket: dict[str, Any],
        profile: Profile,
        *,
        success: bool,
        message: str,
        verify_email: dict[str, Any],
    ) -> None:
        ticket_number = ticket.get("ticketNumber")
        logger.info(
            "Email verification finished",
            profile_name=profile.profile_name,
            ticket_number=ticket_number,
            success=success,
            outcome=message,
        )
        emitter.emit(
            event,
            ItemUpdateEvent(
                ticket_number=ticket_number,
                success=success,
                details=verification_details(ticket_number, message),
                full_response={"ticketCreate": ticket, "verifyEmail": verify_email},
                profile_name=profile.profile_name,
            ),
        )

    async def shutdown(self) -> None:
        """Cancel every outstanding verification and wait for them to settle."""
        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info("Cancelling pending verifications", count=len(tasks))
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
