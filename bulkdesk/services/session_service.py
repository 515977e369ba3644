"""
Client session handling for the /ws socket.

A DeskSession owns one connection: it validates incoming command frames,
routes them to the runner, registry and Zoho services, and answers with
events. Job control commands (pause/resume/end) are applied inline so they
take effect in arrival order; anything that waits on Zoho runs as a task so
the socket keeps reading.
"""

import asyncio
import weakref
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from bulkdesk.dependencies import ServiceContainer
from bulkdesk.events.emitter import EventEmitter
from bulkdesk.infrastructure.observability.logging import get_logger
from bulkdesk.jobs.cancellation import CancellationToken
from bulkdesk.models.api.socket_commands import (
    CommandPayload,
    ProfileCommand,
    SendTestTicketCommand,
    SocketCommand,
    SocketFrame,
    StartBulkCommand,
    UpdateMailReplyAddressCommand,
    VerifySingleTicketCommand,
)
from bulkdesk.models.api.socket_events import (
    CommandErrorEvent,
    ItemResultEvent,
    ResultEvent,
    SocketEvent,
)
from bulkdesk.models.domain.job_domain import JobKey, JobStatus
from bulkdesk.models.domain.profile_domain import Profile
from bulkdesk.services.errors import parse_error
from bulkdesk.services.ticket_log import TicketLogError

logger = get_logger(__name__)

EMAIL_FAILURES_LIMIT = 50
API_STATUS_OK_MESSAGE = "Token is valid. Connection to Zoho API is successful."
MISSING_EMAIL_OR_PROFILE = "Missing email or profile."
UNKNOWN_RECIPIENT = "Unknown"

_STATUS_COMMANDS = {
    SocketCommand.PAUSE: JobStatus.PAUSED,
    SocketCommand.RESUME: JobStatus.RUNNING,
    SocketCommand.END: JobStatus.ENDED,
}

_PAYLOAD_MODELS: dict[SocketCommand, type[BaseModel]] = {
    SocketCommand.START_BULK: StartBulkCommand,
    SocketCommand.PAUSE: ProfileCommand,
    SocketCommand.RESUME: ProfileCommand,
    SocketCommand.END: ProfileCommand,
    SocketCommand.SEND_TEST_TICKET: SendTestTicketCommand,
    SocketCommand.VERIFY_SINGLE_TICKET: VerifySingleTicketCommand,
    SocketCommand.CHECK_API_STATUS: ProfileCommand,
    SocketCommand.GET_EMAIL_FAILURES: ProfileCommand,
    SocketCommand.CLEAR_EMAIL_FAILURES: ProfileCommand,
    SocketCommand.CLEAR_TICKET_LOGS: CommandPayload,
    SocketCommand.GET_MAIL_REPLY_ADDRESS: ProfileCommand,
    SocketCommand.UPDATE_MAIL_REPLY_ADDRESS: UpdateMailReplyAddressCommand,
}


class DeskSession:
    """Command dispatch and cleanup for one connected dashboard."""

    def __init__(self, session_id: str, emitter: EventEmitter, services: ServiceContainer):
        self.session_id = session_id
        self._emitter = emitter
        self._services = services
        self._tasks: set[asyncio.Task] = set()
        # Verifications started outside a bulk job (test / single ticket)
        self._session_token = CancellationToken()
        # One per bulk job. Held weakly: the runner and its pending verifications
        # keep a token alive, so finished jobs drop out on their own.
        self._job_tokens: weakref.WeakSet[CancellationToken] = weakref.WeakSet()

        self._handlers: dict[SocketCommand, Callable[[Any], Awaitable[None]]] = {
            SocketCommand.START_BULK: self._start_bulk,
            SocketCommand.SEND_TEST_TICKET: self._send_test_ticket,
            SocketCommand.VERIFY_SINGLE_TICKET: self._verify_single_ticket,
            SocketCommand.CHECK_API_STATUS: self._check_api_status,
            SocketCommand.GET_EMAIL_FAILURES: self._get_email_failures,
            SocketCommand.CLEAR_EMAIL_FAILURES: self._clear_email_failures,
            SocketCommand.GET_MAIL_REPLY_ADDRESS: self._get_mail_reply_address,
            SocketCommand.UPDATE_MAIL_REPLY_ADDRESS: self._update_mail_reply_address,
        }

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handle_frame(self, raw: Any) -> asyncio.Task | None:
        """
        Validate and dispatch one client frame.

        Returns:
            The task running the command, or None if it completed inline
            or was rejected
        """
        try:
            frame = SocketFrame.model_validate(raw)
        except ValidationError:
            command_name = raw.get("command") if isinstance(raw, dict) else None
            self._command_error(command_name, "Invalid command frame.")
            return None

        try:
            command = SocketCommand(frame.command)
        except ValueError:
            self._command_error(frame.command, f"Unknown command: {frame.command}")
            return None

        try:
            payload = _PAYLOAD_MODELS[command].model_validate(frame.data)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or "data"
            self._command_error(command.value, f"Invalid {field}: {first.get('msg')}")
            return None

        logger.debug("Command received", session_id=self.session_id, command=command.value)

        if command in _STATUS_COMMANDS:
            self._set_job_status(payload, _STATUS_COMMANDS[command])
            return None
        if command is SocketCommand.CLEAR_TICKET_LOGS:
            self._clear_ticket_logs()
            return None

        return self._spawn(command, self._handlers[command](payload))

    def _spawn(self, command: SocketCommand, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"{command.value}:{self.session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Session command crashed",
                session_id=self.session_id,
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def join(self) -> None:
        """Wait for every command task started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def disconnect(self) -> int:
        """
        Tear the session down: stop its jobs, cancel its verifications and
        drop any event emitted afterwards.

        Returns:
            int: Number of jobs removed from the registry
        """
        close = getattr(self._emitter, "close", None)
        if close is not None:
            close()

        removed = self._services.registry.delete_all_for_session(self.session_id)
        self._session_token.request_cancel()
        for token in list(self._job_tokens):
            token.request_cancel()

        logger.info(
            "Session disconnected",
            session_id=self.session_id,
            jobs_removed=removed,
            pending_tasks=len(self._tasks),
        )
        return removed

    def _command_error(self, command: str | None, message: str) -> None:
        logger.warning(
            "Rejected client command",
            session_id=self.session_id,
            command=command,
            error=message,
        )
        self._emitter.emit(
            SocketEvent.COMMAND_ERROR, CommandErrorEvent(command=command, message=message)
        )

    def _resolve_profile(self, command: ProfileCommand) -> Profile:
        return self._services.profile_store.require(command.profile_name)

    def _fail(self, event: SocketEvent, exc: Exception, profile_name: str | None) -> None:
        info = parse_error(exc)
        logger.warning(
            "Session command failed",
            session_id=self.session_id,
            socket_event=event.value,
            profile_name=profile_name,
            error=info.message,
        )
        self._emitter.emit(
            event, ResultEvent(success=False, error=info.message, profile_name=profile_name)
        )

    # ------------------------------------------------------------------
    # Job control
    # ------------------------------------------------------------------

    async def _start_bulk(self, command: StartBulkCommand) -> None:
        token = CancellationToken()
        self._job_tokens.add(token)
        await self._services.runner.run(self.session_id, command, self._emitter, token)

    def _set_job_status(self, command: ProfileCommand, status: JobStatus) -> None:
        key = JobKey(self.session_id, command.profile_name or "")
        if not self._services.registry.set_status(key, status):
            logger.debug(
                "Status change ignored, no running job",
                session_id=self.session_id,
                profile_name=command.profile_name,
                status=status.value,
            )

    # ------------------------------------------------------------------
    # One-off tickets
    # ------------------------------------------------------------------

    async def _send_test_ticket(self, command: SendTestTicketCommand) -> None:
        event = SocketEvent.TEST_TICKET_RESULT
        if not command.email or not command.profile_name:
            self._emitter.emit(event, ResultEvent(success=False, error=MISSING_EMAIL_OR_PROFILE))
            return

        try:
            profile = self._resolve_profile(command)
        except Exception as e:
            self._fail(event, e, command.profile_name)
            return

        item = command.work_item()
        outcome = await self._services.ticket_service.create_ticket(profile, item)
        self._emitter.emit(event, ItemResultEvent.from_result(outcome.result, profile.profile_name))

        if item.verify_email and outcome.created:
            self._services.verification_pool.submit(
                outcome.ticket,
                profile,
                self._emitter,
                cancel_token=self._session_token,
                event=SocketEvent.TEST_TICKET_VERIFICATION,
            )

    async def _verify_single_ticket(self, command: VerifySingleTicketCommand) -> None:
        if not command.ticket:
            self._command_error(SocketCommand.VERIFY_SINGLE_TICKET.value, "Missing ticket.")
            return
        try:
            profile = self._resolve_profile(command)
        except Exception as e:
            self._fail(SocketEvent.SINGLE_TICKET_VERIFICATION, e, command.profile_name)
            return

        task = self._services.verification_pool.submit(
            command.ticket,
            profile,
            self._emitter,
            cancel_token=self._session_token,
            event=SocketEvent.SINGLE_TICKET_VERIFICATION,
        )
        if task is not None:
            await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Profile tools
    # ------------------------------------------------------------------

    async def _check_api_status(self, command: ProfileCommand) -> None:
        event = SocketEvent.API_STATUS
        try:
            profile = self._resolve_profile(command)
            token_data = await self._services.desk_service.check_connection(profile)
        except Exception as e:
            info = parse_error(e)
            logger.warning(
                "API status check failed",
                session_id=self.session_id,
                profile_name=command.profile_name,
                error=info.message,
            )
            self._emitter.emit(
                event,
                ResultEvent(
                    success=False,
                    message=f"Connection failed: {info.message}",
                    full_response=info.full_response,
                    profile_name=command.profile_name,
                ),
            )
            return

        self._emitter.emit(
            event,
            ResultEvent(
                success=True,
                message=API_STATUS_OK_MESSAGE,
                full_response=token_data,
                profile_name=profile.profile_name,
            ),
        )

    async def _get_email_failures(self, command: ProfileCommand) -> None:
        event = SocketEvent.EMAIL_FAILURES
        try:
            profile = self._resolve_profile(command)
            response = await self._services.desk_service.get_email_failure_alerts(
                profile, limit=EMAIL_FAILURES_LIMIT
            )
        except Exception as e:
            self._fail(event, e, command.profile_name)
            return

        recipients = self._services.ticket_log.emails_by_ticket()
        failures = [
            {
                **failure,
                "email": recipients.get(str(failure.get("ticketNumber")), UNKNOWN_RECIPIENT),
            }
            for failure in response.get("data") or []
        ]
        self._emitter.emit(
            event, ResultEvent(success=True, data=failures, profile_name=profile.profile_name)
        )

    async def _clear_email_failures(self, command: ProfileCommand) -> None:
        event = SocketEvent.CLEAR_EMAIL_FAILURES_RESULT
        try:
            profile = self._resolve_profile(command)
            await self._services.desk_service.clear_email_failure_alerts(profile)
        except Exception as e:
            self._fail(event, e, command.profile_name)
            return
        self._emitter.emit(event, ResultEvent(success=True, profile_name=profile.profile_name))

    def _clear_ticket_logs(self) -> None:
        event = SocketEvent.CLEAR_TICKET_LOGS_RESULT
        try:
            self._services.ticket_log.clear()
        except TicketLogError as e:
            self._emitter.emit(event, ResultEvent(success=False, error=str(e)))
            return
        self._emitter.emit(event, ResultEvent(success=True))

    async def _get_mail_reply_address(self, command: ProfileCommand) -> None:
        event = SocketEvent.MAIL_REPLY_ADDRESS
        try:
            profile = self._resolve_profile(command)
            if not profile.mail_reply_address_id:
                self._emitter.emit(
                    event,
                    ResultEvent(
                        success=True, not_configured=True, profile_name=profile.profile_name
                    ),
                )
                return
            data = await self._services.desk_service.get_mail_reply_address(profile)
        except Exception as e:
            self._fail(event, e, command.profile_name)
            return
        self._emitter.emit(
            event, ResultEvent(success=True, data=data, profile_name=profile.profile_name)
        )

    async def _update_mail_reply_address(self, command: UpdateMailReplyAddressCommand) -> None:
        event = SocketEvent.MAIL_REPLY_ADDRESS_UPDATED
        try:
            profile = self._resolve_profile(command)
            data = await self._services.desk_service.update_mail_reply_address(
                profile, command.display_name
            )
        except Exception as e:
            self._fail(event, e, command.profile_name)
            return
        self._emitter.emit(
            event, ResultEvent(success=True, data=data, profile_name=profile.profile_name)
        )
