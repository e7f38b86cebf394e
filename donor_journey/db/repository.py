"""Data access repositories for the CRM tables the analysis pipeline touches.

Simple reads and writes per table. Rows are converted to the pipeline's
records at this boundary so nothing above it sees raw column names.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ..models.donor import CommunicationMessage, CommunicationThread, Donation, DonorProfile, PredictedAction
from ..models.journey import DonorJourneyGraph, parse_journey_graph
from .client import execute_many, execute_query

logger = logging.getLogger(__name__)

TODO_TYPE_PREDICTED_ACTION = "PREDICTED_ACTION"
TODO_STATUS_PENDING = "PENDING"
TODO_PRIORITY_MEDIUM = "MEDIUM"


def _json_default(obj: Any) -> Any:
    """Handle non-serializable objects for JSON encoding."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _serialize_json(value: Any) -> str | None:
    """Serialize a value to JSON string for storage."""
    if value is None:
        return None
    return json.dumps(value, default=_json_default)


def _deserialize_json(value: str | bytes | None) -> Any:
    """Deserialize a JSON string from storage."""
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value  # Already parsed by driver


@dataclass
class TodoRecord:
    """Row in the todos table."""

    title: str
    description: str
    organization_id: str
    donor_id: Optional[str] = None
    type: str = TODO_TYPE_PREDICTED_ACTION
    status: str = TODO_STATUS_PENDING
    priority: str = TODO_PRIORITY_MEDIUM
    scheduled_date: Optional[datetime] = None
    explanation: Optional[str] = None
    instruction: Optional[str] = None
    id: Optional[int] = None


def row_to_donor_profile(row: dict) -> DonorProfile:
    return DonorProfile(
        id=str(row["id"]),
        organization_id=str(row["organization_id"]),
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        email=row.get("email"),
        current_stage_name=row.get("current_stage_name") or None,
        classification_reasoning=row.get("classification_reasoning"),
    )


def row_to_donation(row: dict) -> Donation:
    return Donation(
        id=str(row["id"]),
        amount=int(row["amount"]),
        date=row["date"],
        currency=row.get("currency") or "USD",
        project_name=row.get("project_name"),
    )


def rows_to_threads(thread_rows: list[dict], message_rows: list[dict], messages_per_thread: int) -> list[CommunicationThread]:
    """Group message rows under their threads, keeping thread order and capping messages per thread.

    ``message_rows`` must already be ordered newest first within each thread.
    """
    threads = {
        str(row["id"]): CommunicationThread(id=str(row["id"]), channel=row.get("channel") or "email")
        for row in thread_rows
    }
    for row in message_rows:
        thread = threads.get(str(row["thread_id"]))
        if thread is None or len(thread.messages) >= messages_per_thread:
            continue
        thread.messages.append(
            CommunicationMessage(
                content=row.get("content") or "",
                sent_at=row.get("datetime"),
                from_donor=row.get("from_donor_id") is not None,
            )
        )
    return list(threads.values())


def row_to_todo(row: dict) -> TodoRecord:
    return TodoRecord(
        id=row.get("id"),
        title=row["title"],
        description=row["description"],
        organization_id=str(row["organization_id"]),
        donor_id=str(row["donor_id"]) if row.get("donor_id") is not None else None,
        type=row["type"],
        status=row["status"],
        priority=row.get("priority") or TODO_PRIORITY_MEDIUM,
        scheduled_date=row.get("scheduled_date"),
        explanation=row.get("explanation"),
        instruction=row.get("instruction"),
    )


class OrganizationRepository:
    """Organization journey graph storage."""

    def get_journey_graph(self, organization_id: str) -> Optional[DonorJourneyGraph]:
        """Load the stored journey graph. Returns None when the organization has none."""
        row = execute_query(
            "SELECT donor_journey FROM organizations WHERE id = %s",
            (organization_id,),
            fetch="one",
        )
        if not row:
            return None
        data = _deserialize_json(row.get("donor_journey"))
        if data is None:
            return None
        return parse_journey_graph(data)

    def save_journey(self, organization_id: str, graph: DonorJourneyGraph, journey_text: Optional[str] = None) -> None:
        """Replace the organization's journey graph (and source text, when given)."""
        if journey_text is None:
            execute_query(
                "UPDATE organizations SET donor_journey = %s, updated_at = CURRENT_TIMESTAMP WHERE id = %s",
                (_serialize_json(graph.to_dict()), organization_id),
                fetch="none",
            )
        else:
            execute_query(
                "UPDATE organizations SET donor_journey = %s, donor_journey_text = %s, "
                "updated_at = CURRENT_TIMESTAMP WHERE id = %s",
                (_serialize_json(graph.to_dict()), journey_text, organization_id),
                fetch="none",
            )


class DonorRepository:
    """Donor profile and stage fields."""

    def get_profile(self, donor_id: str, organization_id: str) -> Optional[DonorProfile]:
        row = execute_query(
            "SELECT id, organization_id, first_name, last_name, email, current_stage_name, "
            "classification_reasoning FROM donors WHERE id = %s AND organization_id = %s",
            (donor_id, organization_id),
            fetch="one",
        )
        return row_to_donor_profile(row) if row else None

    def update_stage(self, donor_id: str, stage_name: str, reasoning: Optional[str]) -> None:
        execute_query(
            "UPDATE donors SET current_stage_name = %s, classification_reasoning = %s, "
            "updated_at = CURRENT_TIMESTAMP WHERE id = %s",
            (stage_name, reasoning, donor_id),
            fetch="none",
        )

    def update_predicted_actions(self, donor_id: str, actions: list[PredictedAction]) -> None:
        execute_query(
            "UPDATE donors SET predicted_actions = %s, updated_at = CURRENT_TIMESTAMP WHERE id = %s",
            (_serialize_json([action.to_dict() for action in actions]), donor_id),
            fetch="none",
        )

    def get_predicted_actions(self, donor_id: str) -> list[PredictedAction]:
        row = execute_query("SELECT predicted_actions FROM donors WHERE id = %s", (donor_id,), fetch="one")
        data = _deserialize_json(row.get("predicted_actions")) if row else None
        return [PredictedAction.model_validate(item) for item in data or []]


class CommunicationRepository:
    """Communication threads a donor participates in."""

    def get_history(self, donor_id: str, thread_limit: int, messages_per_thread: int) -> list[CommunicationThread]:
        """Most recent threads first, each with its newest messages first."""
        thread_rows = (
            execute_query(
                "SELECT t.id, t.channel FROM communication_threads t "
                "JOIN communication_thread_donors td ON td.thread_id = t.id "
                "WHERE td.donor_id = %s ORDER BY t.updated_at DESC, t.id DESC LIMIT %s",
                (donor_id, thread_limit),
            )
            or []
        )
        if not thread_rows:
            return []

        placeholders = ", ".join(["%s"] * len(thread_rows))
        message_rows = (
            execute_query(
                f"SELECT thread_id, content, datetime, from_donor_id FROM communication_content "
                f"WHERE thread_id IN ({placeholders}) ORDER BY thread_id, datetime DESC",
                tuple(row["id"] for row in thread_rows),
            )
            or []
        )
        return rows_to_threads(thread_rows, message_rows, messages_per_thread)


class DonationRepository:
    """Donations with their project names."""

    def get_history(self, donor_id: str, limit: int) -> list[Donation]:
        rows = (
            execute_query(
                "SELECT d.id, d.amount, d.date, d.currency, p.name AS project_name FROM donations d "
                "LEFT JOIN projects p ON p.id = d.project_id "
                "WHERE d.donor_id = %s ORDER BY d.date DESC LIMIT %s",
                (donor_id, limit),
            )
            or []
        )
        return [row_to_donation(row) for row in rows]


class TodoRepository:
    """To-do records generated for donors."""

    COLUMNS = [
        "title",
        "description",
        "type",
        "status",
        "priority",
        "scheduled_date",
        "donor_id",
        "organization_id",
        "explanation",
        "instruction",
    ]

    def get_for_donor(self, donor_id: str, organization_id: str, todo_type: str = TODO_TYPE_PREDICTED_ACTION) -> list[TodoRecord]:
        rows = (
            execute_query(
                "SELECT * FROM todos WHERE donor_id = %s AND organization_id = %s AND type = %s ORDER BY id",
                (donor_id, organization_id, todo_type),
            )
            or []
        )
        return [row_to_todo(row) for row in rows]

    def create_many(self, todos: list[TodoRecord]) -> int:
        placeholders = ", ".join(["%s"] * len(self.COLUMNS))
        return execute_many(
            f"INSERT INTO todos ({', '.join(self.COLUMNS)}) VALUES ({placeholders})",
            [tuple(getattr(todo, col) for col in self.COLUMNS) for todo in todos],
        )

    def delete_many(self, todo_ids: list[int]) -> int:
        if not todo_ids:
            return 0
        placeholders = ", ".join(["%s"] * len(todo_ids))
        execute_query(f"DELETE FROM todos WHERE id IN ({placeholders})", tuple(todo_ids), fetch="none")
        return len(todo_ids)
