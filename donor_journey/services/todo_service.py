"""
To-do materializer - turn a donor's predicted actions into tracked to-dos.

Every analysis run hands over the donor's full current action list. The
donor's pending PREDICTED_ACTION to-dos are reconciled against it:

- pending to-dos matching an action (same type and description) are kept
- actions with no matching pending to-do are created
- pending to-dos no longer predicted are removed
- to-dos in any other status (in progress, completed, ...) are never touched

Running it twice with the same list is a no-op the second time.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ..db.repository import TODO_STATUS_PENDING, TodoRecord, TodoRepository
from ..models.donor import PredictedAction

logger = logging.getLogger(__name__)


@dataclass
class TodoSyncResult:
    """What a reconciliation did."""

    created: int = 0
    removed: int = 0
    kept: int = 0


@dataclass
class TodoPlan:
    """Reconciliation plan: records to insert and ids to delete."""

    to_create: list[TodoRecord] = field(default_factory=list)
    to_remove: list[int] = field(default_factory=list)
    kept: int = 0


def _action_key(action_type: str, description: str) -> tuple[str, str]:
    return action_type.strip().lower(), " ".join(description.split())


def _parse_scheduled_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"Ignoring unparseable scheduledDate {value!r}")
        return None


def action_to_todo(action: PredictedAction, donor_id: str, organization_id: str) -> TodoRecord:
    return TodoRecord(
        title=action.type,
        description=action.description,
        donor_id=donor_id,
        organization_id=organization_id,
        scheduled_date=_parse_scheduled_date(action.scheduled_date),
        explanation=action.explanation,
        instruction=action.instruction,
    )


def plan_todo_reconciliation(
    existing: list[TodoRecord],
    actions: list[PredictedAction],
    donor_id: str,
    organization_id: str,
) -> TodoPlan:
    """
    Work out which predicted-action to-dos to create and remove.

    Args:
        existing: The donor's current PREDICTED_ACTION to-dos (any status)
        actions: The full, current predicted action list
        donor_id: Donor the to-dos belong to
        organization_id: Owning organization

    Returns:
        TodoPlan (pure; nothing is written)
    """
    plan = TodoPlan()

    pending: dict[tuple[str, str], list[TodoRecord]] = {}
    for todo in existing:
        if todo.status == TODO_STATUS_PENDING:
            pending.setdefault(_action_key(todo.title, todo.description), []).append(todo)

    for action in actions:
        matches = pending.get(_action_key(action.type, action.description))
        if matches:
            matches.pop(0)
            plan.kept += 1
        else:
            plan.to_create.append(action_to_todo(action, donor_id, organization_id))

    for leftovers in pending.values():
        plan.to_remove.extend(todo.id for todo in leftovers if todo.id is not None)

    return plan


class TodoService:
    """
    Reconcile predicted-action to-dos in the CRM database.

    Example:
        service = TodoService()
        result = await service.materialize_todos_from_predicted_actions("42", "org_1", actions)
        print(result.created, result.removed, result.kept)
    """

    def __init__(self, repository: Optional[TodoRepository] = None):
        self.repository = repository or TodoRepository()

    def sync_predicted_action_todos(
        self, donor_id: str, organization_id: str, predicted_actions: list[PredictedAction]
    ) -> TodoSyncResult:
        existing = self.repository.get_for_donor(donor_id, organization_id)
        plan = plan_todo_reconciliation(existing, predicted_actions, donor_id, organization_id)

        # Insert first: a failed insert must not leave the donor with no pending to-dos
        if plan.to_create:
            self.repository.create_many(plan.to_create)
        if plan.to_remove:
            self.repository.delete_many(plan.to_remove)

        result = TodoSyncResult(created=len(plan.to_create), removed=len(plan.to_remove), kept=plan.kept)
        logger.info(
            f"To-dos for donor={donor_id} org={organization_id}: "
            f"created={result.created} removed={result.removed} kept={result.kept}"
        )
        return result

    async def materialize_todos_from_predicted_actions(
        self, donor_id: str, organization_id: str, predicted_actions: list[PredictedAction]
    ) -> TodoSyncResult:
        return await asyncio.to_thread(
            self.sync_predicted_action_todos, donor_id, organization_id, predicted_actions
        )
