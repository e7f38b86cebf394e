"""
Stage Transition Service - decide whether a staged donor should move on.

Only the current stage's outgoing transitions are candidates. A stage with no
outgoing transitions short-circuits to "stay" without an LLM call.
"""

import logging
from typing import Optional

from ..config import AnalysisConfig
from ..errors import LLMResponseError
from ..llm.response_parser import parse_llm_response
from ..llm.schemas import StageTransitionResponse
from ..models.analysis import StageTransitionInput, StageTransitionResult
from .prompt_builder import build_stage_transition_prompt

logger = logging.getLogger(__name__)


class StageTransitionService:
    """
    Check whether new evidence justifies a stage transition.

    The returned ``next_stage_id`` is the model's answer as-is; the caller
    decides whether it is an acceptable target.
    """

    def __init__(self, llm_client, config: Optional[AnalysisConfig] = None):
        self.llm_client = llm_client
        self.config = config or AnalysisConfig()

    async def classify_stage_transition(self, input_data: StageTransitionInput) -> StageTransitionResult:
        """
        Raises:
            LLMResponseError: If ``canTransition`` is missing or not a boolean
        """
        donor = input_data.donor_info
        graph = input_data.donor_journey_graph

        if not graph.outgoing_transitions(input_data.current_stage_id):
            logger.info(
                f"Donor={donor.id} stage {input_data.current_stage_id} has no outgoing transitions, staying"
            )
            return StageTransitionResult(
                donor_id=donor.id,
                can_transition=False,
                next_stage_id=None,
                reasoning="Current stage has no outgoing transitions.",
            )

        prompt, prompt_info = build_stage_transition_prompt(input_data, self.config)
        logger.info(
            f"Checking transition for donor={donor.id} from stage {input_data.current_stage_id} "
            f"({len(prompt)} char prompt, v{prompt_info.version})"
        )

        response_text = await self.llm_client.generate_text(prompt, prompt_version=prompt_info.version)

        parsed = parse_llm_response(response_text, StageTransitionResponse)
        if not parsed.success:
            logger.error(f"Invalid transition response for donor={donor.id}: {parsed.error}")
            raise LLMResponseError(
                f"Stage transition response for donor {donor.id} is invalid: {parsed.error}",
                raw_text=response_text,
            )

        data = parsed.data
        logger.info(
            f"Transition check for donor={donor.id}: can_transition={data.canTransition}, "
            f"next={data.nextStageId or 'N/A'}"
        )
        return StageTransitionResult(
            donor_id=donor.id,
            can_transition=data.canTransition,
            next_stage_id=data.nextStageId,
            reasoning=data.reasoning,
        )
