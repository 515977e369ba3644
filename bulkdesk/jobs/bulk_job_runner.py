"""
Bulk job runner.

Drives one profile's batch: one ticket per recipient, paced by a delay,
pausable, resumable and endable from the client between items. Every item
produces exactly one item-result; the run ends with exactly one terminal
event (job-completed, job-ended or job-error) unless the session that
started it has already gone away.
"""

import time

from bulkdesk.config import settings
from bulkdesk.events.emitter import EventEmitter
from bulkdesk.infrastructure.observability.logging import get_logger, log_job_event
from bulkdesk.jobs.cancellation import CancellationToken
from bulkdesk.jobs.job_registry import JobAlreadyRunningError, JobControl, JobRegistry
from bulkdesk.jobs.verification_worker import VerificationPool
from bulkdesk.models.api.socket_commands import StartBulkCommand
from bulkdesk.models.api.socket_events import (
    ItemResultEvent,
    JobErrorEvent,
    JobFinishedEvent,
    SocketEvent,
)
from bulkdesk.models.domain.job_domain import JobKey, JobOutcome, WorkItem
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.errors import ProfileValidationError
from bulkdesk.services.profile_store import ProfileStore
from bulkdesk.services.ticket_service import TicketService

logger = get_logger(__name__)

CRITICAL_ERROR_MESSAGE = "A critical server error occurred."


class BulkJobRunner:
    """
    Runs bulk jobs against the shared registry, ticket service and
    verification pool. One instance serves every session.
    """

    def __init__(
        self,
        registry: JobRegistry,
        profile_store: ProfileStore,
        ticket_service: TicketService,
        verification_pool: VerificationPool,
        *,
        cancel_verification_on_end: bool | None = None,
    ):
        self.registry = registry
        self._profile_store = profile_store
        self._ticket_service = ticket_service
        self._verification_pool = verification_pool
        self.cancel_verification_on_end = (
            settings.VERIFY_CANCEL_ON_JOB_END
            if cancel_verification_on_end is None
            else cancel_verification_on_end
        )

    async def run(
        self,
        session_id: str,
        command: StartBulkCommand,
        emitter: EventEmitter,
        cancel_token: CancellationToken | None = None,
    ) -> JobOutcome:
        """
        Execute one bulk job to completion.

        Args:
            session_id: Owning client session
            command: Validated start-bulk payload
            emitter: Where item results and the terminal event go
            cancel_token: Shared with this job's verification tasks

        Returns:
            JobOutcome: How the run terminated (events are the client contract)
        """
        profile_name = command.profile_name or ""
        key = JobKey(session_id, profile_name)
        verification_token = cancel_token or CancellationToken()

        try:
            control = self.registry.create(key)
        except JobAlreadyRunningError as e:
            log_job_event("job_rejected", profile_name, session_id)
            emitter.emit(
                SocketEvent.JOB_ERROR,
                JobErrorEvent(message=str(e), profile_name=profile_name),
            )
            return JobOutcome.REJECTED

        items = command.work_items()
        start_time = time.monotonic()
        processed = 0
        log_job_event(
            "job_started",
            profile_name,
            session_id,
            items=len(items),
            delay=command.delay,
            send_direct_reply=command.send_direct_reply,
            verify_email=command.verify_email,
        )

        try:
            profile = self._resolve_profile(command)
            processed = await self._process_items(
                control, profile, items, command.delay, emitter, verification_token
            )
            outcome = self._final_outcome(control)

        except Exception as e:
            message = str(e) or CRITICAL_ERROR_MESSAGE
            outcome = JobOutcome.DETACHED if control.detached else JobOutcome.ERRORED
            log_job_event(
                "job_error",
                profile_name,
                session_id,
                error=message,
                error_type=type(e).__name__,
                processed=processed,
            )
            if outcome is JobOutcome.ERRORED:
                emitter.emit(
                    SocketEvent.JOB_ERROR,
                    JobErrorEvent(message=message, profile_name=profile_name),
                )

        else:
            if outcome is JobOutcome.ENDED:
                emitter.emit(SocketEvent.JOB_ENDED, JobFinishedEvent(profile_name=profile_name))
            elif outcome is JobOutcome.COMPLETED:
                emitter.emit(
                    SocketEvent.JOB_COMPLETED, JobFinishedEvent(profile_name=profile_name)
                )

        finally:
            self.registry.delete(key, control)

        if outcome is JobOutcome.DETACHED or (
            outcome is JobOutcome.ENDED and self.cancel_verification_on_end
        ):
            verification_token.request_cancel()

        log_job_event(
            f"job_{outcome.value}",
            profile_name,
            session_id,
            processed=processed,
            total=len(items),
            duration_seconds=round(time.monotonic() - start_time, 2),
        )
        return outcome

    def _resolve_profile(self, command: StartBulkCommand) -> Profile:
        """
        Raises:
            ProfileValidationError: Unknown profile, or direct reply requested
                without a from address
        """
        profile = self._profile_store.require(command.profile_name)
        if command.send_direct_reply and not profile.can_send_direct_reply():
            raise ProfileValidationError(
                f'Profile "{profile.profile_name}" is missing "fromEmailAddress".'
            )
        return profile

    async def _process_items(
        self,
        control: JobControl,
        profile: Profile,
        items: list[WorkItem],
        delay: float,
        emitter: EventEmitter,
        verification_token: CancellationToken,
    ) -> int:
        """Main loop. Returns the number of items processed."""
        processed = 0

        for index, item in enumerate(items):
            if control.should_stop:
                break

            await control.wait_while_paused()
            if control.should_stop:
                break

            if index > 0 and delay > 0:
                if not await control.sleep(delay):
                    break
                # A pause may have arrived during the delay
                await control.wait_while_paused()
                if control.should_stop:
                    break

            outcome = await self._ticket_service.create_ticket(profile, item)
            processed += 1

            emitter.emit(
                SocketEvent.ITEM_RESULT,
                ItemResultEvent.from_result(outcome.result, profile.profile_name),
            )

            if item.verify_email and outcome.created:
                self._verification_pool.submit(
                    outcome.ticket, profile, emitter, cancel_token=verification_token
                )

        return processed

    @staticmethod
    def _final_outcome(control: JobControl) -> JobOutcome:
        if control.detached:
            return JobOutcome.DETACHED
        if control.should_stop:
            return JobOutcome.ENDED
        return JobOutcome.COMPLETED
