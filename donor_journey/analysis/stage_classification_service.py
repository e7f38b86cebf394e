"""
Stage Classification Service - place an unstaged donor into one journey stage.

One text-generation call per donor. The response must carry a string
``stageId``; anything else is an LLMResponseError. Whether that id exists in
the graph is checked by the caller, not here.
"""

import logging
from typing import Optional

from ..config import AnalysisConfig
from ..errors import LLMResponseError
from ..llm.response_parser import parse_llm_response
from ..llm.schemas import StageClassificationResponse
from ..models.analysis import StageClassificationInput, StageClassificationResult
from .prompt_builder import build_stage_classification_prompt

logger = logging.getLogger(__name__)


class StageClassificationService:
    """
    Classify a donor with no current stage.

    Example:
        service = StageClassificationService(LLMClient(task=LLMTask.STAGE_CLASSIFICATION))
        result = await service.classify_donor_stage(input_data)
        print(result.classified_stage_id)  # "n1"
    """

    def __init__(self, llm_client, config: Optional[AnalysisConfig] = None):
        self.llm_client = llm_client
        self.config = config or AnalysisConfig()

    async def classify_donor_stage(self, input_data: StageClassificationInput) -> StageClassificationResult:
        """
        Ask the LLM which stage fits the donor.

        Raises:
            LLMResponseError: If the response has no string ``stageId``
        """
        donor = input_data.donor_info
        prompt, prompt_info = build_stage_classification_prompt(input_data, self.config)
        logger.info(f"Classifying donor={donor.id} ({len(prompt)} char prompt, v{prompt_info.version})")

        response_text = await self.llm_client.generate_text(prompt, prompt_version=prompt_info.version)

        parsed = parse_llm_response(response_text, StageClassificationResponse)
        if not parsed.success:
            logger.error(f"Invalid classification response for donor={donor.id}: {parsed.error}")
            raise LLMResponseError(
                f"Stage classification response for donor {donor.id} is invalid: {parsed.error}",
                raw_text=response_text,
            )

        logger.info(f"Donor={donor.id} classified as stage {parsed.data.stageId}")
        return StageClassificationResult(
            donor_id=donor.id,
            classified_stage_id=parsed.data.stageId,
            reasoning=parsed.data.reasoning,
        )
