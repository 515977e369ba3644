# models/domain/job_domain.py
"""
Bulk job domain models.

Lightweight shapes shared by the registry, the runner and the verification
pool. Business logic lives in the jobs package, not here.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class JobStatus(str, Enum):
    """Control status stored in the job registry."""

    RUNNING = "running"
    PAUSED = "paused"
    ENDED = "ended"


class JobOutcome(str, Enum):
    """How a runner loop terminated. Only ever signalled through events."""

    COMPLETED = "completed"
    ENDED = "ended"
    ERRORED = "errored"
    DETACHED = "detached"  # session went away, nobody left to notify
    REJECTED = "rejected"  # a job for the same key was already running


class JobKey(NamedTuple):
    """Registry key: one job per profile per client session."""

    session_id: str
    profile_name: str


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One recipient's worth of work, plus the fields shared by the whole job."""

    email: str
    subject: str
    description: str
    send_direct_reply: bool = False
    verify_email: bool = False


class ItemResult(BaseModel):
    """Outcome of a single work item. Never mutated after it is emitted."""

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )

    email: str
    success: bool
    ticket_number: str | None = None
    details: str | None = None
    full_response: Any = None
    error: str | None = None
