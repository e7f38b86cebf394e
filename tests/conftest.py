"""Shared fixtures for donor journey tests.

No network and no database: LLM calls go through FakeLLMClient and persistence
through InMemoryDataStore, which implements the same async store interface the
orchestrator uses in production.
"""

import json
import re
from dataclasses import replace
from datetime import datetime
from typing import Optional

import pytest

from donor_journey.models.donor import (
    CommunicationMessage,
    CommunicationThread,
    Donation,
    DonorProfile,
    PredictedAction,
)
from donor_journey.models.journey import DonorJourneyGraph, parse_journey_graph
from donor_journey.services.data_store import DonorDataStore

SAMPLE_GRAPH_DATA = {
    "nodes": [
        {
            "id": "n1",
            "label": "Initial Contact",
            "properties": {
                "description": "First interaction with a potential donor",
                "expectedDuration": "1-2 weeks",
                "actions": ["Send welcome email", "Add to CRM"],
            },
        },
        {
            "id": "n2",
            "label": "Follow Up",
            "properties": {"description": "Donor has been followed up after first contact"},
        },
        {
            "id": "n3",
            "label": "Meeting",
            "properties": {"description": "Donor has met with staff in person"},
        },
    ],
    "edges": [
        {
            "id": "e1",
            "source": "n1",
            "target": "n2",
            "label": "FOLLOW_UP",
            "properties": {"description": "Send follow-up email after initial contact", "typicalDelay": "3 days"},
        },
        {
            "id": "e2",
            "source": "n2",
            "target": "n3",
            "label": "SCHEDULE_MEETING",
            "properties": {"description": "Donor agrees to meet"},
        },
    ],
}


def sample_graph() -> DonorJourneyGraph:
    return parse_journey_graph(json.loads(json.dumps(SAMPLE_GRAPH_DATA)))


def donor_id_in_prompt(prompt: str) -> str:
    """Donor id from the 'Donor Information' section (the first '- ID:' line)."""
    return re.search(r"- ID: (\S+)", prompt).group(1)


def actions_json(*descriptions: str) -> str:
    return json.dumps(
        {
            "actions": [
                {
                    "type": "email",
                    "description": description,
                    "explanation": "Keeps the relationship warm",
                    "instruction": "Mention their last gift",
                }
                for description in descriptions
            ]
        }
    )


class FakeLLMClient:
    """Scripted stand-in for LLMClient.

    ``responses`` are returned in order; ``responder`` (prompt -> reply) takes
    precedence when given. A reply that is an Exception is raised instead.
    """

    def __init__(self, responses=None, responder=None, structured_response=None):
        self.responses = list(responses or [])
        self.responder = responder
        self.structured_response = structured_response
        self.calls: list[str] = []
        self.structured_calls: list[dict] = []

    async def generate_text(self, prompt: str, system_prompt: Optional[str] = None, prompt_version=None) -> str:
        self.calls.append(prompt)
        reply = self.responder(prompt) if self.responder is not None else self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def generate_structured_object(self, prompt: str, schema, system_prompt=None, prompt_version=None):
        self.structured_calls.append({"prompt": prompt, "schema": schema, "system_prompt": system_prompt})
        if isinstance(self.structured_response, Exception):
            raise self.structured_response
        return self.structured_response


class InMemoryDataStore(DonorDataStore):
    """Dict-backed DonorDataStore that records every read and write."""

    def __init__(self, graphs=None, profiles=None, threads=None, donations=None):
        self.graphs: dict[str, DonorJourneyGraph] = dict(graphs or {})
        self.profiles: dict[str, DonorProfile] = {p.id: p for p in (profiles or [])}
        self.threads: dict[str, list[CommunicationThread]] = dict(threads or {})
        self.donations: dict[str, list[Donation]] = dict(donations or {})
        self.reads: list[tuple] = []
        self.stage_writes: list[tuple] = []
        self.action_writes: list[tuple] = []
        self.saved_graphs: list[tuple] = []

    async def get_donor_journey_graph(self, organization_id):
        self.reads.append(("graph", organization_id))
        return self.graphs.get(organization_id)

    async def get_donor_profile(self, donor_id, organization_id):
        self.reads.append(("profile", donor_id))
        profile = self.profiles.get(donor_id)
        if profile is None or profile.organization_id != organization_id:
            return None
        return replace(profile)

    async def get_donor_communication_history(self, donor_id, limit, messages_per_thread):
        self.reads.append(("communications", donor_id, limit))
        return self.threads.get(donor_id, [])[:limit]

    async def get_donor_donation_history(self, donor_id, limit):
        self.reads.append(("donations", donor_id, limit))
        return self.donations.get(donor_id, [])[:limit]

    async def persist_donor_stage(self, donor_id, current_stage_name, classification_reasoning):
        self.stage_writes.append((donor_id, current_stage_name, classification_reasoning))
        profile = self.profiles[donor_id]
        profile.current_stage_name = current_stage_name
        profile.classification_reasoning = classification_reasoning

    async def persist_donor_predicted_actions(self, donor_id, predicted_actions):
        self.action_writes.append((donor_id, list(predicted_actions)))

    async def save_donor_journey_graph(self, organization_id, graph, journey_text=None):
        self.saved_graphs.append((organization_id, graph, journey_text))
        self.graphs[organization_id] = graph


class RecordingTodoMaterializer:
    def __init__(self):
        self.calls: list[tuple[str, str, list[PredictedAction]]] = []

    async def materialize_todos_from_predicted_actions(self, donor_id, organization_id, predicted_actions):
        self.calls.append((donor_id, organization_id, list(predicted_actions)))


def make_donor(donor_id: str = "1", stage: Optional[str] = None, organization_id: str = "org_1") -> DonorProfile:
    return DonorProfile(
        id=donor_id,
        organization_id=organization_id,
        first_name="Donor",
        last_name=donor_id,
        email=f"donor{donor_id}@example.org",
        current_stage_name=stage,
    )


@pytest.fixture
def graph() -> DonorJourneyGraph:
    return sample_graph()


@pytest.fixture
def sample_history():
    threads = [
        CommunicationThread(
            id="t1",
            messages=[
                CommunicationMessage(content="Thanks for the welcome email!", from_donor=True),
                CommunicationMessage(content="Welcome to our community.", from_donor=False),
            ],
        )
    ]
    donations = [Donation(id="d1", amount=5000, date=datetime(2026, 3, 1), project_name="Clean Water")]
    return threads, donations
