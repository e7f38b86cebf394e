"""Tests for the batch orchestrator: stage resolution, persistence and failure isolation."""

import asyncio

import pytest
from conftest import (
    FakeLLMClient,
    InMemoryDataStore,
    RecordingTodoMaterializer,
    actions_json,
    donor_id_in_prompt,
    make_donor,
)

from donor_journey.analysis import ActionPredictionService, StageClassificationService, StageTransitionService
from donor_journey.config import AnalysisConfig
from donor_journey.errors import EmptyJourneyGraphError, JourneyGraphNotFoundError
from donor_journey.models.journey import DonorJourneyGraph
from donor_journey.services.donor_analysis_service import DonorAnalysisService

STAY = '{"canTransition": false, "nextStageId": null, "reasoning": "Nothing new"}'

# ─── Helpers ──────────────────────────────────────────────────────────────────


class Harness:
    """Orchestrator wired to one fake LLM per service."""

    def __init__(self, store, classify=None, transition=None, predict=None, config=None):
        self.store = store
        self.classify_llm = FakeLLMClient(responder=classify or (lambda _: '{"stageId": "n1"}'))
        self.transition_llm = FakeLLMClient(responder=transition or (lambda _: STAY))
        self.predict_llm = FakeLLMClient(responder=predict or (lambda _: actions_json("Send thank-you note")))
        self.materializer = RecordingTodoMaterializer()
        self.service = DonorAnalysisService(
            store=store,
            todo_materializer=self.materializer,
            classification_service=StageClassificationService(self.classify_llm),
            transition_service=StageTransitionService(self.transition_llm),
            prediction_service=ActionPredictionService(self.predict_llm),
            config=config,
        )

    def run(self, donor_ids, organization_id="org_1"):
        return asyncio.run(self.service.analyze_donors(donor_ids, organization_id, requesting_user_id="user_9"))


def _store(graph, *donors, **kwargs):
    return InMemoryDataStore(graphs={"org_1": graph}, profiles=list(donors), **kwargs)


# ─── Batch-level failures ───────────────────────────────────────────────────


class TestMissingGraph:
    def test_missing_graph_aborts_before_any_donor_is_read(self):
        store = InMemoryDataStore(profiles=[make_donor("1")])
        harness = Harness(store)
        with pytest.raises(JourneyGraphNotFoundError) as exc_info:
            harness.run(["1", "2"])
        assert exc_info.value.organization_id == "org_1"
        assert store.reads == [("graph", "org_1")]
        assert harness.classify_llm.calls == []

    def test_empty_graph_aborts_with_its_own_message(self):
        store = _store(DonorJourneyGraph.empty(), make_donor("1"))
        with pytest.raises(EmptyJourneyGraphError, match="has no stages") as exc_info:
            Harness(store).run(["1"])
        assert isinstance(exc_info.value, JourneyGraphNotFoundError)
        assert exc_info.value.organization_id == "org_1"
        assert store.reads == [("graph", "org_1")]

    def test_graph_of_another_organization_not_used(self, graph):
        store = _store(graph, make_donor("1"))
        with pytest.raises(JourneyGraphNotFoundError):
            Harness(store).run(["1"], organization_id="org_2")


# ─── Classification path ────────────────────────────────────────────────────


class TestUnstagedDonor:
    def test_classified_and_persisted(self, graph):
        store = _store(graph, make_donor("1"))
        harness = Harness(store, classify=lambda _: '{"stageId": "n1", "reasoning": "First contact"}')
        batch = harness.run(["1"])

        result = batch.get("1")
        assert result.status == "success"
        assert result.stage == "Initial Contact"
        assert result.previous_stage is None
        assert result.stage_changed
        assert store.stage_writes == [("1", "Initial Contact", "First contact")]

    def test_blank_stored_stage_is_classified(self, graph):
        store = _store(graph, make_donor("1", stage=""))
        harness = Harness(store)
        result = harness.run(["1"]).get("1")

        assert result.status == "success"
        assert result.stage == "Initial Contact"
        assert result.previous_stage is None
        assert harness.transition_llm.calls == []
        assert len(harness.classify_llm.calls) == 1

    def test_never_goes_through_transition_check(self, graph):
        store = _store(graph, make_donor("1"), make_donor("2"))
        harness = Harness(store)
        harness.run(["1", "2"])
        assert len(harness.classify_llm.calls) == 2
        assert harness.transition_llm.calls == []

    def test_unknown_classified_id_fails_donor_without_touching_stage(self, graph):
        store = _store(graph, make_donor("1"))
        harness = Harness(store, classify=lambda _: '{"stageId": "n9"}')
        result = harness.run(["1"]).get("1")

        assert result.status == "error"
        assert "n9" in result.error
        assert store.stage_writes == []
        assert store.action_writes == []
        assert store.profiles["1"].current_stage_name is None
        assert harness.predict_llm.calls == []

    def test_missing_stage_id_fails_donor(self, graph):
        store = _store(graph, make_donor("1"))
        result = Harness(store, classify=lambda _: '{"reasoning": "Unclear"}').run(["1"]).get("1")
        assert result.status == "error"
        assert store.stage_writes == []


# ─── Transition path ────────────────────────────────────────────────────────


class TestStagedDonor:
    def test_never_goes_through_classification(self, graph):
        store = _store(graph, make_donor("1", stage="Initial Contact"))
        harness = Harness(store)
        harness.run(["1"])
        assert harness.classify_llm.calls == []
        assert len(harness.transition_llm.calls) == 1

    def test_accepted_transition_persisted(self, graph):
        store = _store(graph, make_donor("1", stage="Initial Contact"))
        harness = Harness(
            store, transition=lambda _: '{"canTransition": true, "nextStageId": "n2", "reasoning": "Replied"}'
        )
        result = harness.run(["1"]).get("1")

        assert result.stage == "Follow Up"
        assert result.previous_stage == "Initial Contact"
        assert store.stage_writes == [("1", "Follow Up", "Replied")]

    def test_no_transition_leaves_stage_untouched(self, graph):
        store = _store(graph, make_donor("1", stage="Follow Up"))
        result = Harness(store).run(["1"]).get("1")
        assert result.stage == "Follow Up"
        assert not result.stage_changed
        assert store.stage_writes == []

    @pytest.mark.parametrize(
        "reply",
        [
            '{"canTransition": true, "nextStageId": null}',
            '{"canTransition": true, "nextStageId": "n9"}',
            '{"canTransition": true, "nextStageId": "n3"}',
            '{"canTransition": true, "nextStageId": "n1"}',
            '{"canTransition": true, "nextStageId": 2}',
            '{"canTransition": true, "nextStageId": {"id": "n2"}}',
        ],
        ids=[
            "null-target",
            "unknown-target",
            "non-adjacent-target",
            "self-target",
            "numeric-target",
            "object-target",
        ],
    )
    def test_unreachable_target_keeps_stage(self, graph, reply):
        store = _store(graph, make_donor("1", stage="Initial Contact"))
        harness = Harness(store, transition=lambda _: reply)
        result = harness.run(["1"]).get("1")

        assert result.status == "success"
        assert result.stage == "Initial Contact"
        assert store.stage_writes == []
        assert store.profiles["1"].current_stage_name == "Initial Contact"
        assert "- Label: Initial Contact" in harness.predict_llm.calls[0]

    def test_stale_stage_name_fails_donor(self, graph):
        store = _store(graph, make_donor("1", stage="Lapsed"), make_donor("2", stage="Follow Up"))
        harness = Harness(store)
        batch = harness.run(["1", "2"])

        assert batch.get("1").status == "error"
        assert "Lapsed" in batch.get("1").error
        assert batch.get("2").status == "success"
        assert len(harness.transition_llm.calls) == 1
        assert donor_id_in_prompt(harness.transition_llm.calls[0]) == "2"

    def test_stage_names_are_case_sensitive(self, graph):
        store = _store(graph, make_donor("1", stage="follow up"))
        assert Harness(store).run(["1"]).get("1").status == "error"


# ─── Action prediction and to-dos ───────────────────────────────────────────


class TestActions:
    def test_actions_persisted_and_materialized(self, graph):
        store = _store(graph, make_donor("1"))
        harness = Harness(store, predict=lambda _: actions_json("Send impact report", "Call to thank"))
        result = harness.run(["1"]).get("1")

        descriptions = [a.description for a in result.actions]
        assert descriptions == ["Send impact report", "Call to thank"]
        assert [(d, [a.description for a in actions]) for d, actions in store.action_writes] == [
            ("1", descriptions)
        ]
        assert [(d, org, [a.description for a in actions]) for d, org, actions in harness.materializer.calls] == [
            ("1", "org_1", descriptions)
        ]

    def test_empty_action_list_overwrites(self, graph):
        store = _store(graph, make_donor("1", stage="Meeting"))
        harness = Harness(store, predict=lambda _: '{"actions": []}')
        result = harness.run(["1"]).get("1")
        assert result.status == "success"
        assert result.actions == []
        assert store.action_writes == [("1", [])]
        assert harness.materializer.calls == [("1", "org_1", [])]

    def test_prediction_failure_keeps_new_stage(self, graph):
        store = _store(graph, make_donor("1"))
        harness = Harness(store, predict=lambda _: RuntimeError("429 rate limited"))
        result = harness.run(["1"]).get("1")

        assert result.status == "error"
        assert "429" in result.error
        assert store.stage_writes == [("1", "Initial Contact", None)]
        assert store.action_writes == []
        assert harness.materializer.calls == []

    def test_history_fetched_with_configured_limits(self, graph):
        store = _store(graph, make_donor("1"))
        config = AnalysisConfig(communication_thread_limit=3, donation_limit=4)
        Harness(store, config=config).run(["1"])
        assert store.reads == [("graph", "org_1"), ("profile", "1"), ("communications", "1", 3), ("donations", "1", 4)]


# ─── Batch behavior ─────────────────────────────────────────────────────────


class TestBatch:
    def test_failure_isolation(self, graph):
        def classify(prompt):
            if donor_id_in_prompt(prompt) == "2":
                return RuntimeError("upstream model unavailable")
            return '{"stageId": "n1"}'

        store = _store(graph, make_donor("1"), make_donor("2"), make_donor("3"))
        batch = Harness(store, classify=classify).run(["1", "2", "3"])

        assert [r.donor_id for r in batch.results] == ["1", "2", "3"]
        assert [r.status for r in batch.results] == ["success", "error", "success"]
        assert batch.get("2").error == "upstream model unavailable"
        assert batch.get("2").stage is None
        assert (batch.succeeded, batch.failed) == (2, 1)

    def test_missing_donor_reported(self, graph):
        store = _store(graph, make_donor("1"))
        batch = Harness(store).run(["1", "404"])
        assert batch.get("404").status == "error"
        assert batch.get("404").error == "Donor 404 not found."
        assert batch.get("1").status == "success"

    def test_donor_of_another_organization_not_found(self, graph):
        store = _store(graph, make_donor("1", organization_id="org_2"))
        assert Harness(store).run(["1"]).get("1").status == "error"
        assert store.stage_writes == []

    def test_results_keep_request_order(self, graph):
        donors = [make_donor(str(i)) for i in range(1, 8)]
        store = _store(graph, *donors)
        batch = Harness(store, config=AnalysisConfig(max_concurrency=2)).run(["7", "3", "1", "5", "2", "6", "4"])
        assert [r.donor_id for r in batch.results] == ["7", "3", "1", "5", "2", "6", "4"]
        assert batch.succeeded == 7

    def test_result_dict(self, graph):
        store = _store(graph, make_donor("1"))
        data = Harness(store).run(["1", "404"]).to_dict()

        assert data["message"] == "Analysis process completed. Successful: 1, Failed: 1"
        assert data["results"][0] == {
            "donorId": "1",
            "status": "success",
            "stage": "Initial Contact",
            "actions": [
                {
                    "type": "email",
                    "description": "Send thank-you note",
                    "explanation": "Keeps the relationship warm",
                    "instruction": "Mention their last gift",
                }
            ],
        }
        assert data["results"][1] == {
            "donorId": "404",
            "status": "error",
            "stage": None,
            "actions": [],
            "error": "Donor 404 not found.",
        }

    def test_empty_batch(self, graph):
        batch = Harness(_store(graph)).run([])
        assert batch.results == []
        assert batch.message == "Analysis process completed. Successful: 0, Failed: 0"


# ─── Example scenarios ──────────────────────────────────────────────────────


class TestScenarios:
    def test_classify_then_transition_on_next_run(self, graph):
        store = _store(graph, make_donor("1"))
        harness = Harness(
            store,
            classify=lambda _: '{"stageId": "n1", "reasoning": "New donor"}',
            transition=lambda _: '{"canTransition": true, "nextStageId": "n2", "reasoning": "Followed up"}',
        )

        harness.run(["1"])
        assert store.profiles["1"].current_stage_name == "Initial Contact"

        harness.run(["1"])
        assert store.profiles["1"].current_stage_name == "Follow Up"
        assert store.profiles["1"].classification_reasoning == "Followed up"
        assert len(harness.classify_llm.calls) == 1
        assert len(harness.transition_llm.calls) == 1

    def test_terminal_stage_stays_and_still_predicts(self, graph):
        store = _store(graph, make_donor("1", stage="Meeting"))
        harness = Harness(store)
        result = harness.run(["1"]).get("1")

        assert result.status == "success"
        assert result.stage == "Meeting"
        assert harness.transition_llm.calls == []
        assert store.stage_writes == []
        assert len(harness.predict_llm.calls) == 1
        assert "- ID: n3" in harness.predict_llm.calls[0]
