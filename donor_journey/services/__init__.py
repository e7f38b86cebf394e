"""Journey generation, batch donor analysis, persistence seam and to-do reconciliation."""

from .data_store import DonorDataStore, RepositoryDonorDataStore
from .donor_analysis_service import DonorAnalysisService
from .donor_journey_service import DonorJourneyService
from .todo_service import TodoService, TodoSyncResult, plan_todo_reconciliation

__all__ = [
    "DonorAnalysisService",
    "DonorDataStore",
    "DonorJourneyService",
    "RepositoryDonorDataStore",
    "TodoService",
    "TodoSyncResult",
    "plan_todo_reconciliation",
]
