"""
Async data store interface consumed by the analysis orchestrator.

``DonorDataStore`` is the seam between the pipeline and persistence. The
orchestrator only awaits these methods; ``RepositoryDonorDataStore`` backs them
with the synchronous repositories, running each call in a worker thread.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional

from ..db.repository import (
    CommunicationRepository,
    DonationRepository,
    DonorRepository,
    OrganizationRepository,
)
from ..models.donor import CommunicationThread, Donation, DonorProfile, PredictedAction
from ..models.journey import DonorJourneyGraph


class DonorDataStore(ABC):
    """Reads and writes the analysis pipeline needs."""

    @abstractmethod
    async def get_donor_journey_graph(self, organization_id: str) -> Optional[DonorJourneyGraph]:
        ...

    @abstractmethod
    async def get_donor_profile(self, donor_id: str, organization_id: str) -> Optional[DonorProfile]:
        ...

    @abstractmethod
    async def get_donor_communication_history(
        self, donor_id: str, limit: int, messages_per_thread: int
    ) -> list[CommunicationThread]:
        """Most recent threads first."""

    @abstractmethod
    async def get_donor_donation_history(self, donor_id: str, limit: int) -> list[Donation]:
        """Most recent donations first."""

    @abstractmethod
    async def persist_donor_stage(
        self, donor_id: str, current_stage_name: str, classification_reasoning: Optional[str]
    ) -> None:
        ...

    @abstractmethod
    async def persist_donor_predicted_actions(self, donor_id: str, predicted_actions: list[PredictedAction]) -> None:
        """Overwrite the donor's stored predicted actions."""

    @abstractmethod
    async def save_donor_journey_graph(
        self, organization_id: str, graph: DonorJourneyGraph, journey_text: Optional[str] = None
    ) -> None:
        """Replace the organization's journey graph wholesale."""


class RepositoryDonorDataStore(DonorDataStore):
    """DonorDataStore over the CRM database repositories."""

    def __init__(
        self,
        organizations: Optional[OrganizationRepository] = None,
        donors: Optional[DonorRepository] = None,
        communications: Optional[CommunicationRepository] = None,
        donations: Optional[DonationRepository] = None,
    ):
        self.organizations = organizations or OrganizationRepository()
        self.donors = donors or DonorRepository()
        self.communications = communications or CommunicationRepository()
        self.donations = donations or DonationRepository()

    async def get_donor_journey_graph(self, organization_id: str) -> Optional[DonorJourneyGraph]:
        return await asyncio.to_thread(self.organizations.get_journey_graph, organization_id)

    async def get_donor_profile(self, donor_id: str, organization_id: str) -> Optional[DonorProfile]:
        return await asyncio.to_thread(self.donors.get_profile, donor_id, organization_id)

    async def get_donor_communication_history(
        self, donor_id: str, limit: int, messages_per_thread: int
    ) -> list[CommunicationThread]:
        return await asyncio.to_thread(self.communications.get_history, donor_id, limit, messages_per_thread)

    async def get_donor_donation_history(self, donor_id: str, limit: int) -> list[Donation]:
        return await asyncio.to_thread(self.donations.get_history, donor_id, limit)

    async def persist_donor_stage(
        self, donor_id: str, current_stage_name: str, classification_reasoning: Optional[str]
    ) -> None:
        await asyncio.to_thread(self.donors.update_stage, donor_id, current_stage_name, classification_reasoning)

    async def persist_donor_predicted_actions(self, donor_id: str, predicted_actions: list[PredictedAction]) -> None:
        await asyncio.to_thread(self.donors.update_predicted_actions, donor_id, predicted_actions)

    async def save_donor_journey_graph(
        self, organization_id: str, graph: DonorJourneyGraph, journey_text: Optional[str] = None
    ) -> None:
        await asyncio.to_thread(self.organizations.save_journey, organization_id, graph, journey_text)
