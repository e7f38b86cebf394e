"""Data models for donor journeys, donors and analysis results."""

from .analysis import (
    ActionPredictionInput,
    ActionPredictionResult,
    BatchAnalysisResult,
    DonorAnalysisResult,
    StageClassificationInput,
    StageClassificationResult,
    StageTransitionInput,
    StageTransitionResult,
)
from .donor import (
    CommunicationMessage,
    CommunicationThread,
    Donation,
    DonorAnalysisInfo,
    DonorProfile,
    PredictedAction,
)
from .journey import (
    DonorJourneyGraph,
    Stage,
    Transition,
    get_stage_id_from_name,
    get_stage_name_from_id,
    parse_journey_graph,
    validate_journey_graph,
)

__all__ = [
    # Journey graph
    "DonorJourneyGraph",
    "Stage",
    "Transition",
    "get_stage_id_from_name",
    "get_stage_name_from_id",
    "parse_journey_graph",
    "validate_journey_graph",
    # Donor records
    "CommunicationMessage",
    "CommunicationThread",
    "Donation",
    "DonorAnalysisInfo",
    "DonorProfile",
    "PredictedAction",
    # Service inputs/outputs
    "ActionPredictionInput",
    "ActionPredictionResult",
    "BatchAnalysisResult",
    "DonorAnalysisResult",
    "StageClassificationInput",
    "StageClassificationResult",
    "StageTransitionInput",
    "StageTransitionResult",
]
