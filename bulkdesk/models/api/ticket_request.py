# models/api/ticket_request.py
"""Request models for the HTTP ticket endpoints."""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bulkdesk.models.domain.job_domain import WorkItem


class SingleTicketRequest(BaseModel):
    """Create one ticket outside of any bulk job."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    email: str | None = Field(default=None, description="Recipient / contact email")
    subject: str = Field(default="", description="Ticket subject")
    description: str = Field(default="", description="Ticket body, also used as reply content")
    profile_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("profileName", "selectedProfileName", "profile_name"),
        description="Profile to create the ticket with",
    )
    send_direct_reply: bool = Field(default=False, description="Also send an email reply")

    def is_complete(self) -> bool:
        return bool(self.email and self.email.strip() and self.profile_name)

    def work_item(self) -> WorkItem:
        return WorkItem(
            email=(self.email or "").strip(),
            subject=self.subject,
            description=self.description,
            send_direct_reply=self.send_direct_reply,
        )
