"""Per-donor LLM analysis: classification, transition check and action prediction."""

from .action_prediction_service import ActionPredictionService
from .stage_classification_service import StageClassificationService
from .stage_transition_service import StageTransitionService

__all__ = [
    "ActionPredictionService",
    "StageClassificationService",
    "StageTransitionService",
]
