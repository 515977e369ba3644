# models/api/ticket_response.py
"""Response models for the HTTP ticket endpoints."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SingleTicketResponse(BaseModel):
    """Outcome of POST /api/tickets/single."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )

    success: bool = Field(..., description="Whether the ticket was created")
    ticket_number: str | None = Field(default=None, description="Zoho ticket number")
    details: str | None = Field(default=None, description="Human readable outcome")
    full_response: Any = Field(default=None, description="Raw Zoho payloads or error detail")
    error: str | None = Field(default=None, description="Normalized error message on failure")
