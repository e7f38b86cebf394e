"""Inputs and outputs of the analysis services and the batch orchestrator."""

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from .donor import CommunicationThread, Donation, DonorAnalysisInfo, PredictedAction
from .journey import DonorJourneyGraph


@dataclass
class StageClassificationInput:
    """Context for classifying a donor that has no stage yet."""

    donor_info: DonorAnalysisInfo
    donor_journey_graph: DonorJourneyGraph
    communication_history: list[CommunicationThread]
    donation_history: list[Donation]


@dataclass
class StageTransitionInput(StageClassificationInput):
    """Context for checking whether a staged donor should move on."""

    current_stage_id: str


@dataclass
class ActionPredictionInput(StageTransitionInput):
    """Context for predicting actions once the stage is resolved."""


@dataclass
class StageClassificationResult:
    donor_id: str
    classified_stage_id: str
    reasoning: Optional[str] = None


@dataclass
class StageTransitionResult:
    donor_id: str
    can_transition: bool
    next_stage_id: Optional[str] = None
    reasoning: Optional[str] = None


@dataclass
class ActionPredictionResult:
    donor_id: str
    predicted_actions: list[PredictedAction] = field(default_factory=list)


@dataclass
class DonorAnalysisResult:
    """Outcome of one donor's pipeline run."""

    donor_id: str
    status: Literal["success", "error"]
    stage: Optional[str] = None
    actions: list[PredictedAction] = field(default_factory=list)
    error: Optional[str] = None
    previous_stage: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "success"

    @property
    def stage_changed(self) -> bool:
        return self.succeeded and self.stage != self.previous_stage

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "donorId": self.donor_id,
            "status": self.status,
            "stage": self.stage,
            "actions": [action.to_dict() for action in self.actions],
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class BatchAnalysisResult:
    """Per-donor results for one ``analyze_donors`` call, in request order."""

    organization_id: str
    results: list[DonorAnalysisResult] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    @property
    def message(self) -> str:
        return f"Analysis process completed. Successful: {self.succeeded}, Failed: {self.failed}"

    def get(self, donor_id: str) -> Optional[DonorAnalysisResult]:
        return next((r for r in self.results if r.donor_id == donor_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "organizationId": self.organization_id,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }
