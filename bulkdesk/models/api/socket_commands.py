# models/api/socket_commands.py
"""
Client -> server WebSocket command payloads.

Frames arrive as ``{"command": <name>, "data": {...}}``. Older dashboards
send ``selectedProfileName`` instead of ``profileName``; both are accepted.
"""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from bulkdesk.models.domain.job_domain import WorkItem


class SocketCommand(str, Enum):
    """Command names accepted on /ws."""

    START_BULK = "start-bulk"
    PAUSE = "pause"
    RESUME = "resume"
    END = "end"
    SEND_TEST_TICKET = "send-test-ticket"
    VERIFY_SINGLE_TICKET = "verify-single-ticket"
    CHECK_API_STATUS = "check-api-status"
    GET_EMAIL_FAILURES = "get-email-failures"
    CLEAR_EMAIL_FAILURES = "clear-email-failures"
    CLEAR_TICKET_LOGS = "clear-ticket-logs"
    GET_MAIL_REPLY_ADDRESS = "get-mail-reply-address"
    UPDATE_MAIL_REPLY_ADDRESS = "update-mail-reply-address"


class SocketFrame(BaseModel):
    """Envelope of every client frame."""

    command: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class CommandPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ProfileCommand(CommandPayload):
    """Any command scoped to one profile."""

    profile_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("profileName", "selectedProfileName", "profile_name"),
    )


class StartBulkCommand(ProfileCommand):
    """Start a bulk run for one profile."""

    emails: list[str] = Field(default_factory=list, description="Recipients, one ticket each")
    subject: str = ""
    description: str = ""
    delay: float = Field(default=0, ge=0, description="Seconds between consecutive items")
    send_direct_reply: bool = False
    verify_email: bool = False

    @field_validator("emails", mode="before")
    @classmethod
    def split_email_text(cls, value: Any) -> Any:
        # The dashboard textarea may be sent as-is
        if isinstance(value, str):
            return value.splitlines()
        return value

    def work_items(self) -> list[WorkItem]:
        """Work items for every non-blank recipient, in input order."""
        return [
            WorkItem(
                email=email.strip(),
                subject=self.subject,
                description=self.description,
                send_direct_reply=self.send_direct_reply,
                verify_email=self.verify_email,
            )
            for email in self.emails
            if email and email.strip()
        ]


class SendTestTicketCommand(ProfileCommand):
    email: str | None = None
    subject: str = ""
    description: str = ""
    send_direct_reply: bool = False
    verify_email: bool = False

    def work_item(self) -> WorkItem:
        return WorkItem(
            email=(self.email or "").strip(),
            subject=self.subject,
            description=self.description,
            send_direct_reply=self.send_direct_reply,
            verify_email=self.verify_email,
        )


class VerifySingleTicketCommand(ProfileCommand):
    ticket: dict[str, Any] | None = None


class UpdateMailReplyAddressCommand(ProfileCommand):
    display_name: str = Field(..., min_length=1)
