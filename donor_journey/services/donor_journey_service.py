"""
Donor Journey Service - turn an organization's free-text journey into a stage graph.

One structured-generation call per description. The decoded output goes
through the same structural validator as stored graphs, so a malformed
answer (missing fields, edges pointing at unknown stages, duplicate labels)
is rejected before anything is saved. LLM errors propagate as-is.
"""

import logging
from typing import Optional

from ..errors import InvalidJourneyGraphError
from ..llm.prompt_loader import load_prompt
from ..llm.schemas import JourneyGraphResponse
from ..models.journey import (
    DonorJourneyGraph,
    get_stage_id_from_name,
    get_stage_name_from_id,
    parse_journey_graph,
)

logger = logging.getLogger(__name__)


class DonorJourneyService:
    """
    Generate donor journey graphs from text.

    Example:
        service = DonorJourneyService(LLMClient(task=LLMTask.JOURNEY_GENERATION))
        graph = await service.process_journey("New donors get a welcome email, then ...")
        print(len(graph.nodes))
    """

    def __init__(self, llm_client):
        self.llm_client = llm_client

    async def process_journey(self, description: str) -> DonorJourneyGraph:
        """
        Generate a journey graph from a free-text description.

        Empty or whitespace-only text returns an empty graph without calling the LLM.

        Raises:
            InvalidJourneyGraphError: If the generated graph fails structural validation
            LLMResponseError: If the response is not decodable JSON
        """
        if not description or not description.strip():
            logger.info("Empty journey description, returning empty graph")
            return DonorJourneyGraph.empty()

        system_prompt = load_prompt("journey_generation_system")
        user_prompt = load_prompt("journey_generation")

        logger.info(f"Generating donor journey graph ({len(description)} char description)")
        data = await self.llm_client.generate_structured_object(
            user_prompt.render(description=description.strip()),
            JourneyGraphResponse,
            system_prompt=system_prompt.content,
        )

        try:
            graph = parse_journey_graph(data)
        except InvalidJourneyGraphError as e:
            logger.error(f"Generated journey graph rejected: {e}")
            raise

        logger.info(f"Generated donor journey graph: {len(graph.nodes)} stages, {len(graph.edges)} transitions")
        return graph

    async def regenerate_for_organization(self, organization_id: str, description: str, store) -> DonorJourneyGraph:
        """
        Generate a graph and store it as the organization's journey, replacing the old one.

        Nothing is written when generation or validation fails.
        """
        graph = await self.process_journey(description)
        await store.save_donor_journey_graph(organization_id, graph, journey_text=description)
        logger.info(f"Saved donor journey for org={organization_id} ({len(graph.nodes)} stages)")
        return graph

    @staticmethod
    def get_stage_id_from_name(graph: DonorJourneyGraph, stage_name: str) -> Optional[str]:
        return get_stage_id_from_name(graph, stage_name)

    @staticmethod
    def get_stage_name_from_id(graph: DonorJourneyGraph, stage_id: str) -> Optional[str]:
        return get_stage_name_from_id(graph, stage_id)
