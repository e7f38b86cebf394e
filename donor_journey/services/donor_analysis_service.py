"""
Donor Analysis Service - run the stage and action pipeline over a batch of donors.

Per donor, strictly in order:
1. fetch profile, communication history and donation history
2. no stage yet -> classify; otherwise -> transition check over the current
   stage's outgoing transitions only
3. persist the resolved stage (when it changed or was first assigned)
4. predict actions, persist them (full overwrite), reconcile to-dos

Donors run concurrently up to ``max_concurrency``. Any donor-level failure
(missing donor, stage no longer in the graph, bad LLM output, LLM error) is
recorded on that donor's result and never aborts the batch. A missing journey
graph aborts the batch before any donor is read.
"""

import logging
import time
from typing import Optional

from ..analysis import ActionPredictionService, StageClassificationService, StageTransitionService
from ..config import AnalysisConfig
from ..errors import DonorNotFoundError, EmptyJourneyGraphError, JourneyGraphNotFoundError, UnknownStageError
from ..llm.llm_client import LLMTask, get_client_for_task
from ..models.analysis import (
    ActionPredictionInput,
    BatchAnalysisResult,
    DonorAnalysisResult,
    StageClassificationInput,
    StageTransitionInput,
)
from ..models.donor import CommunicationThread, Donation, DonorAnalysisInfo, DonorProfile
from ..models.journey import DonorJourneyGraph, Stage
from ..utils.worker_pool import AsyncWorkerPool
from .data_store import DonorDataStore

logger = logging.getLogger(__name__)


class DonorAnalysisService:
    """
    Orchestrates classification/transition and action prediction per donor.

    Example:
        service = DonorAnalysisService.create(store, TodoService(), config)
        batch = await service.analyze_donors(["1", "2"], "org_1", requesting_user_id="user_9")
        print(batch.message)
    """

    def __init__(
        self,
        store: DonorDataStore,
        todo_materializer,
        classification_service: StageClassificationService,
        transition_service: StageTransitionService,
        prediction_service: ActionPredictionService,
        config: Optional[AnalysisConfig] = None,
        pipeline_logger=None,
    ):
        self.store = store
        self.todo_materializer = todo_materializer
        self.classification_service = classification_service
        self.transition_service = transition_service
        self.prediction_service = prediction_service
        self.config = config or AnalysisConfig()
        self.pipeline_logger = pipeline_logger

    @classmethod
    def create(
        cls,
        store: DonorDataStore,
        todo_materializer,
        config: Optional[AnalysisConfig] = None,
        pipeline_logger=None,
    ) -> "DonorAnalysisService":
        """Wire the three analysis services to task-specific LLM clients."""
        config = config or AnalysisConfig()
        return cls(
            store=store,
            todo_materializer=todo_materializer,
            classification_service=StageClassificationService(
                get_client_for_task(LLMTask.STAGE_CLASSIFICATION, model=config.model, logger=pipeline_logger), config
            ),
            transition_service=StageTransitionService(
                get_client_for_task(LLMTask.STAGE_TRANSITION, model=config.model, logger=pipeline_logger), config
            ),
            prediction_service=ActionPredictionService(
                get_client_for_task(LLMTask.ACTION_PREDICTION, model=config.model, logger=pipeline_logger), config
            ),
            config=config,
            pipeline_logger=pipeline_logger,
        )

    @property
    def total_cost_usd(self) -> float:
        """LLM spend so far across the three services (0 for clients that do not track cost)."""
        services = (self.classification_service, self.transition_service, self.prediction_service)
        return sum(getattr(s.llm_client, "total_cost_usd", 0.0) for s in services)

    async def analyze_donors(
        self,
        donor_ids: list[str],
        organization_id: str,
        requesting_user_id: Optional[str] = None,
    ) -> BatchAnalysisResult:
        """
        Analyze a batch of donors.

        Args:
            donor_ids: Donors to analyze (results keep this order)
            organization_id: Organization that owns the donors and the journey graph
            requesting_user_id: User who asked for the analysis (for the audit log)

        Returns:
            BatchAnalysisResult with one entry per requested donor id

        Raises:
            JourneyGraphNotFoundError: If the organization has no journey graph
            EmptyJourneyGraphError: If its journey graph has no stages
        """
        logger.info(
            f"Analysis requested for {len(donor_ids)} donors org={organization_id} "
            f"user={requesting_user_id or 'N/A'}"
        )

        graph = await self.store.get_donor_journey_graph(organization_id)
        if graph is None:
            logger.error(f"Donor journey graph not found for org={organization_id}, aborting batch")
            raise JourneyGraphNotFoundError(organization_id)
        if graph.is_empty:
            logger.error(f"Donor journey graph for org={organization_id} has no stages, aborting batch")
            raise EmptyJourneyGraphError(organization_id)

        logger.info(
            f"Using donor journey graph for org={organization_id} "
            f"with {len(graph.nodes)} stages and {len(graph.edges)} transitions"
        )

        async def run(donor_id: str) -> DonorAnalysisResult:
            return await self._analyze_donor(str(donor_id), organization_id, graph)

        pool = AsyncWorkerPool(max_workers=self.config.max_concurrency, logger=logger)
        settled = await pool.map(run, list(donor_ids), desc=f"Donor analysis org={organization_id}")

        results = []
        for success, donor_id, outcome in settled:
            if success:
                results.append(outcome)
            else:
                results.append(DonorAnalysisResult(donor_id=str(donor_id), status="error", error=str(outcome)))

        batch = BatchAnalysisResult(organization_id=organization_id, results=results)
        logger.info(f"{batch.message} org={organization_id}")
        return batch

    async def _analyze_donor(
        self, donor_id: str, organization_id: str, graph: DonorJourneyGraph
    ) -> DonorAnalysisResult:
        start = time.monotonic()

        profile = await self.store.get_donor_profile(donor_id, organization_id)
        if profile is None:
            raise DonorNotFoundError(donor_id)

        if self.pipeline_logger:
            self.pipeline_logger.log_analysis_start(donor_id, organization_id, profile.current_stage_name)

        communication_history = await self.store.get_donor_communication_history(
            donor_id, self.config.communication_thread_limit, self.config.messages_per_thread
        )
        donation_history = await self.store.get_donor_donation_history(donor_id, self.config.donation_limit)
        donor_info = profile.to_analysis_info()

        if not profile.current_stage_name:
            stage = await self._classify(donor_info, graph, communication_history, donation_history)
        else:
            stage = await self._check_transition(profile, donor_info, graph, communication_history, donation_history)

        prediction = await self.prediction_service.predict_actions(
            ActionPredictionInput(
                donor_info=donor_info,
                donor_journey_graph=graph,
                communication_history=communication_history,
                donation_history=donation_history,
                current_stage_id=stage.id,
            )
        )
        actions = prediction.predicted_actions

        await self.store.persist_donor_predicted_actions(donor_id, actions)
        await self.todo_materializer.materialize_todos_from_predicted_actions(donor_id, organization_id, actions)

        if self.pipeline_logger:
            self.pipeline_logger.log_analysis_complete(
                donor_id, organization_id, stage.label, len(actions), time.monotonic() - start
            )

        return DonorAnalysisResult(
            donor_id=donor_id,
            status="success",
            stage=stage.label,
            actions=actions,
            previous_stage=profile.current_stage_name or None,
        )

    async def _classify(
        self,
        donor_info: DonorAnalysisInfo,
        graph: DonorJourneyGraph,
        communication_history: list[CommunicationThread],
        donation_history: list[Donation],
    ) -> Stage:
        result = await self.classification_service.classify_donor_stage(
            StageClassificationInput(
                donor_info=donor_info,
                donor_journey_graph=graph,
                communication_history=communication_history,
                donation_history=donation_history,
            )
        )

        stage = graph.get_stage(result.classified_stage_id)
        if stage is None:
            raise UnknownStageError(
                f"Classified stage id '{result.classified_stage_id}' for donor {donor_info.id} "
                f"is not in the journey graph",
                stage=result.classified_stage_id,
            )

        await self.store.persist_donor_stage(donor_info.id, stage.label, result.reasoning)
        logger.info(f"Donor={donor_info.id} classified into '{stage.label}' ({stage.id})")
        return stage

    async def _check_transition(
        self,
        profile: DonorProfile,
        donor_info: DonorAnalysisInfo,
        graph: DonorJourneyGraph,
        communication_history: list[CommunicationThread],
        donation_history: list[Donation],
    ) -> Stage:
        current = graph.get_stage_by_label(profile.current_stage_name)
        if current is None:
            raise UnknownStageError(
                f"Donor {profile.id} is in stage '{profile.current_stage_name}', "
                f"which is not in the journey graph",
                stage=profile.current_stage_name,
            )

        result = await self.transition_service.classify_stage_transition(
            StageTransitionInput(
                donor_info=donor_info,
                donor_journey_graph=graph,
                communication_history=communication_history,
                donation_history=donation_history,
                current_stage_id=current.id,
            )
        )

        if not result.can_transition:
            logger.info(f"Donor={profile.id} stays in '{current.label}'")
            return current

        target = graph.get_stage(result.next_stage_id) if result.next_stage_id else None
        if target is None or target.id not in graph.next_stage_ids(current.id):
            logger.warning(
                f"Donor={profile.id} transition from '{current.label}' recommended without a reachable "
                f"target (next_stage_id={result.next_stage_id!r}), staying"
            )
            return current

        await self.store.persist_donor_stage(profile.id, target.label, result.reasoning)
        logger.info(f"Donor={profile.id} moved '{current.label}' -> '{target.label}'")
        return target
