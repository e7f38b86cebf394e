"""Tests for the three per-donor analysis services."""

import asyncio

import pytest
from conftest import FakeLLMClient, actions_json

from donor_journey.analysis import ActionPredictionService, StageClassificationService, StageTransitionService
from donor_journey.errors import LLMResponseError
from donor_journey.models.analysis import ActionPredictionInput, StageClassificationInput, StageTransitionInput
from donor_journey.models.donor import DonorAnalysisInfo

DONOR = DonorAnalysisInfo(id="7", name="Lena Park", email="lena@example.org")


def _classification_input(graph, history=([], [])):
    threads, donations = history
    return StageClassificationInput(DONOR, graph, threads, donations)


def _transition_input(graph, stage_id):
    return StageTransitionInput(DONOR, graph, [], [], current_stage_id=stage_id)


# ─── Classification ─────────────────────────────────────────────────────────


class TestStageClassification:
    def test_returns_stage_id_and_reasoning(self, graph, sample_history):
        llm = FakeLLMClient(['{"stageId": "n2", "reasoning": "Replied to the welcome email"}'])
        result = asyncio.run(
            StageClassificationService(llm).classify_donor_stage(_classification_input(graph, sample_history))
        )
        assert result.donor_id == "7"
        assert result.classified_stage_id == "n2"
        assert result.reasoning == "Replied to the welcome email"
        assert len(llm.calls) == 1
        assert "Thanks for the welcome email!" in llm.calls[0]

    def test_unknown_stage_id_is_returned_as_is(self, graph):
        llm = FakeLLMClient(['{"stageId": "n42"}'])
        result = asyncio.run(StageClassificationService(llm).classify_donor_stage(_classification_input(graph)))
        assert result.classified_stage_id == "n42"

    def test_fenced_response(self, graph):
        llm = FakeLLMClient(['```json\n{"stageId": "n1"}\n```'])
        result = asyncio.run(StageClassificationService(llm).classify_donor_stage(_classification_input(graph)))
        assert result.classified_stage_id == "n1"

    def test_missing_stage_id_raises(self, graph):
        llm = FakeLLMClient(['{"reasoning": "Hard to say"}'])
        with pytest.raises(LLMResponseError) as exc_info:
            asyncio.run(StageClassificationService(llm).classify_donor_stage(_classification_input(graph)))
        assert exc_info.value.raw_text == '{"reasoning": "Hard to say"}'

    def test_prose_response_raises(self, graph):
        llm = FakeLLMClient(["The donor is clearly in Follow Up."])
        with pytest.raises(LLMResponseError):
            asyncio.run(StageClassificationService(llm).classify_donor_stage(_classification_input(graph)))

    def test_llm_error_propagates(self, graph):
        llm = FakeLLMClient([TimeoutError("request timed out")])
        with pytest.raises(TimeoutError):
            asyncio.run(StageClassificationService(llm).classify_donor_stage(_classification_input(graph)))


# ─── Transition ─────────────────────────────────────────────────────────────


class TestStageTransition:
    def test_transition_recommended(self, graph):
        llm = FakeLLMClient(['{"canTransition": true, "nextStageId": "n2", "reasoning": "Donor replied"}'])
        result = asyncio.run(StageTransitionService(llm).classify_stage_transition(_transition_input(graph, "n1")))
        assert result.can_transition is True
        assert result.next_stage_id == "n2"
        assert result.reasoning == "Donor replied"

    def test_stay(self, graph):
        llm = FakeLLMClient(['{"canTransition": false, "nextStageId": null}'])
        result = asyncio.run(StageTransitionService(llm).classify_stage_transition(_transition_input(graph, "n2")))
        assert result.can_transition is False
        assert result.next_stage_id is None

    def test_prompt_lists_only_outgoing_candidates(self, graph):
        llm = FakeLLMClient(['{"canTransition": false, "nextStageId": null}'])
        asyncio.run(StageTransitionService(llm).classify_stage_transition(_transition_input(graph, "n1")))
        candidates = llm.calls[0].split("Stages the donor can move to:")[1].split("Relevant Donor History:")[0]
        assert "Stage ID: n2" in candidates
        assert "Stage ID: n3" not in candidates

    def test_terminal_stage_skips_llm(self, graph):
        llm = FakeLLMClient()
        result = asyncio.run(StageTransitionService(llm).classify_stage_transition(_transition_input(graph, "n3")))
        assert result.can_transition is False
        assert result.next_stage_id is None
        assert result.reasoning == "Current stage has no outgoing transitions."
        assert llm.calls == []

    def test_non_boolean_can_transition_raises(self, graph):
        llm = FakeLLMClient(['{"canTransition": "true", "nextStageId": "n2"}'])
        with pytest.raises(LLMResponseError):
            asyncio.run(StageTransitionService(llm).classify_stage_transition(_transition_input(graph, "n1")))

    def test_non_string_target_becomes_none(self, graph):
        llm = FakeLLMClient(['{"canTransition": true, "nextStageId": 2, "reasoning": "Moved on"}'])
        result = asyncio.run(StageTransitionService(llm).classify_stage_transition(_transition_input(graph, "n1")))
        assert result.can_transition is True
        assert result.next_stage_id is None
        assert result.reasoning == "Moved on"

    def test_llm_error_propagates(self, graph):
        llm = FakeLLMClient([ConnectionError("connection reset")])
        with pytest.raises(ConnectionError):
            asyncio.run(StageTransitionService(llm).classify_stage_transition(_transition_input(graph, "n1")))


# ─── Action prediction ──────────────────────────────────────────────────────


class TestActionPrediction:
    def test_predicts_actions(self, graph):
        llm = FakeLLMClient([actions_json("Send impact report", "Invite to site visit")])
        result = asyncio.run(
            ActionPredictionService(llm).predict_actions(ActionPredictionInput(DONOR, graph, [], [], "n2"))
        )
        assert result.donor_id == "7"
        assert [a.description for a in result.predicted_actions] == ["Send impact report", "Invite to site visit"]
        assert "- Label: Follow Up" in llm.calls[0]

    def test_empty_list_is_valid(self, graph):
        llm = FakeLLMClient(['{"actions": []}'])
        result = asyncio.run(
            ActionPredictionService(llm).predict_actions(ActionPredictionInput(DONOR, graph, [], [], "n3"))
        )
        assert result.predicted_actions == []

    def test_missing_actions_key_raises(self, graph):
        llm = FakeLLMClient(['{"recommendations": []}'])
        with pytest.raises(LLMResponseError):
            asyncio.run(
                ActionPredictionService(llm).predict_actions(ActionPredictionInput(DONOR, graph, [], [], "n1"))
            )

    def test_incomplete_action_raises(self, graph):
        llm = FakeLLMClient(['{"actions": [{"type": "call", "description": "Check in"}]}'])
        with pytest.raises(LLMResponseError):
            asyncio.run(
                ActionPredictionService(llm).predict_actions(ActionPredictionInput(DONOR, graph, [], [], "n1"))
            )
