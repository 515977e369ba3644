# models/api/socket_events.py
"""
Server -> client WebSocket event payloads.

Every frame is ``{"event": <name>, "data": <payload>}``; payload keys are
camelCase on the wire.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bulkdesk.models.domain.job_domain import ItemResult


class SocketEvent(str, Enum):
    """Event names sent to the dashboard."""

    ITEM_RESULT = "item-result"
    ITEM_UPDATE = "item-update"
    JOB_COMPLETED = "job-completed"
    JOB_ENDED = "job-ended"
    JOB_ERROR = "job-error"
    TEST_TICKET_RESULT = "test-ticket-result"
    TEST_TICKET_VERIFICATION = "test-ticket-verification"
    SINGLE_TICKET_VERIFICATION = "single-ticket-verification"
    API_STATUS = "api-status"
    EMAIL_FAILURES = "email-failures"
    CLEAR_EMAIL_FAILURES_RESULT = "clear-email-failures-result"
    CLEAR_TICKET_LOGS_RESULT = "clear-ticket-logs-result"
    MAIL_REPLY_ADDRESS = "mail-reply-address"
    MAIL_REPLY_ADDRESS_UPDATED = "mail-reply-address-updated"
    COMMAND_ERROR = "command-error"


class EventPayload(BaseModel):
    """Base for outbound payloads: camelCase aliases, immutable."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )


class ItemResultEvent(ItemResult):
    """One finished work item, tagged with the job's profile."""

    profile_name: str

    @classmethod
    def from_result(cls, result: ItemResult, profile_name: str) -> "ItemResultEvent":
        return cls(**result.model_dump(), profile_name=profile_name)


class ItemUpdateEvent(EventPayload):
    """Late verification outcome for an already-reported ticket."""

    ticket_number: str | None = Field(..., description="Ticket the update refers to")
    success: bool
    details: str
    full_response: Any = None
    profile_name: str


class JobFinishedEvent(EventPayload):
    """Payload of job-completed and job-ended."""

    profile_name: str


class JobErrorEvent(EventPayload):
    message: str
    profile_name: str | None = None


class ResultEvent(EventPayload):
    """Generic request/response style result for one-off commands."""

    success: bool
    message: str | None = None
    error: str | None = None
    data: Any = None
    full_response: Any = None
    not_configured: bool | None = None
    profile_name: str | None = None


class CommandErrorEvent(EventPayload):
    """A frame that could not be parsed or routed."""

    command: str | None = None
    message: str
