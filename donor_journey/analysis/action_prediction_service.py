"""
Action Prediction Service - recommend next engagement steps for a donor.

Runs after the donor's stage is resolved. An empty action list is a valid
answer.
"""

import logging
from typing import Optional

from ..config import AnalysisConfig
from ..errors import LLMResponseError
from ..llm.response_parser import parse_llm_response
from ..llm.schemas import ActionPredictionResponse
from ..models.analysis import ActionPredictionInput, ActionPredictionResult
from .prompt_builder import build_action_prediction_prompt

logger = logging.getLogger(__name__)


class ActionPredictionService:
    """Predict actions for a donor at a known stage."""

    def __init__(self, llm_client, config: Optional[AnalysisConfig] = None):
        self.llm_client = llm_client
        self.config = config or AnalysisConfig()

    async def predict_actions(self, input_data: ActionPredictionInput) -> ActionPredictionResult:
        donor = input_data.donor_info
        prompt, prompt_info = build_action_prediction_prompt(input_data, self.config)
        logger.info(
            f"Predicting actions for donor={donor.id} at stage {input_data.current_stage_id} "
            f"({len(prompt)} char prompt, v{prompt_info.version})"
        )

        response_text = await self.llm_client.generate_text(prompt, prompt_version=prompt_info.version)

        parsed = parse_llm_response(response_text, ActionPredictionResponse)
        if not parsed.success:
            logger.error(f"Invalid action prediction response for donor={donor.id}: {parsed.error}")
            raise LLMResponseError(
                f"Action prediction response for donor {donor.id} is invalid: {parsed.error}",
                raw_text=response_text,
            )

        logger.info(f"Predicted {len(parsed.data.actions)} actions for donor={donor.id}")
        return ActionPredictionResult(donor_id=donor.id, predicted_actions=parsed.data.actions)
