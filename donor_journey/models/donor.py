"""Donor-side records consumed by the analysis pipeline.

These are read-only snapshots handed to the services for one analysis run.
``PredictedAction`` is the one model that flows back out: it is validated from
LLM output, stored on the donor record and turned into to-dos.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Action types the prediction prompt asks for. Other strings are accepted.
ACTION_TYPES = ("email", "call", "meeting", "appeal", "event_invitation", "custom_message", "other")


@dataclass
class DonorAnalysisInfo:
    """Donor identity used as LLM context."""

    id: str
    name: str
    email: Optional[str] = None


@dataclass
class DonorProfile:
    """Donor record fields the orchestrator needs."""

    id: str
    organization_id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    current_stage_name: Optional[str] = None
    classification_reasoning: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_analysis_info(self) -> DonorAnalysisInfo:
        return DonorAnalysisInfo(id=str(self.id), name=self.name, email=self.email)


@dataclass
class CommunicationMessage:
    """One message in a communication thread."""

    content: str
    sent_at: Optional[datetime] = None
    from_donor: Optional[bool] = None


@dataclass
class CommunicationThread:
    """A communication thread with its messages, newest message first."""

    id: str
    channel: str = "email"
    messages: list[CommunicationMessage] = field(default_factory=list)


@dataclass
class Donation:
    """A donation record. ``amount`` is in cents."""

    id: str
    amount: int
    date: datetime
    currency: str = "USD"
    project_name: Optional[str] = None

    @property
    def amount_display(self) -> str:
        return f"{self.amount / 100:.2f} {self.currency}"


class PredictedAction(BaseModel):
    """A recommended next step for engaging a donor."""

    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(description="Action channel, e.g. email, call, meeting, appeal, event_invitation")
    description: str = Field(description="Brief summary of the action")
    explanation: str = Field(description="Why this action fits the donor at this stage")
    instruction: str = Field(description="Concrete guidance or talking points for carrying it out")
    scheduled_date: Optional[str] = Field(
        default=None, alias="scheduledDate", description="Optional ISO date for when to do it"
    )

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
