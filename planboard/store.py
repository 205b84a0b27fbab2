"""Application state: the last snapshot read from the repository.

The store is refreshed as a whole through :meth:`PlannerState.reload` after
every successful mutation. Layout functions never read it; callers pass its
contents to them explicitly.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Sequence

from .models import (
    FINISHED_STATUS,
    AssignmentRecord,
    Programmer,
    StatusStyle,
    Task,
    TaskRecord,
    join_tasks,
)
from .planner_logging import log_performance
from .repository import PlannerSnapshot, TaskRepository

logger = logging.getLogger("planboard.store")

PROGRAMMER_ORDER_ENV = "PLANBOARD_PROGRAMMER_ORDER"


def preferred_programmer_order() -> List[str]:
    raw = os.getenv(PROGRAMMER_ORDER_ENV, "")
    return [name.strip() for name in raw.split(",") if name.strip()]


def sort_programmers(programmers: Sequence[Programmer], preferred: Optional[Sequence[str]] = None) -> List[Programmer]:
    """Preferred names first, in the preferred order; everyone else alphabetically."""
    preferred = list(preferred if preferred is not None else preferred_programmer_order())
    rank = {name: index for index, name in enumerate(preferred)}

    def key(programmer: Programmer):
        if programmer.name in rank:
            return (0, rank[programmer.name], "")
        return (1, 0, (programmer.name or "").casefold())

    return sorted(programmers, key=key)


def planner_candidates(tasks: Sequence[Task], search: str = "", show_completed: bool = False) -> List[Task]:
    """Tasks offered when assigning work from an empty planner cell."""
    candidates = [t for t in tasks if show_completed or t.status != FINISHED_STATUS]
    if not search:
        return candidates
    needle = search.lower()
    return [t for t in candidates if needle in t.requirement.lower() or needle in t.id.lower()]


class PlannerState:
    """In-memory copy of tasks, assignment records, programmers and statuses."""

    def __init__(self, repository: TaskRepository):
        self.repository = repository
        self.task_records: List[TaskRecord] = []
        self.assignments: List[AssignmentRecord] = []
        self.programmers: List[Programmer] = []
        self.statuses: List[StatusStyle] = []
        self.tasks: List[Task] = []
        self.loaded = False

    @log_performance("reload_state")
    async def reload(self) -> "PlannerState":
        """Replace the whole state with a fresh repository snapshot."""
        snapshot = await self.repository.fetch_all()
        self._apply(snapshot)
        logger.debug(
            f"State reloaded: {len(self.tasks)} tasks, {len(self.assignments)} assignments, "
            f"{len(self.programmers)} programmers"
        )
        return self

    def _apply(self, snapshot: PlannerSnapshot) -> None:
        self.task_records = list(snapshot.tasks)
        self.assignments = list(snapshot.assignments)
        self.programmers = sort_programmers(snapshot.programmers)
        self.statuses = list(snapshot.statuses)
        self.tasks = join_tasks(self.task_records, self.assignments, self.programmers)
        self.loaded = True

    def task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_record(self, task_id: str) -> Optional[TaskRecord]:
        for record in self.task_records:
            if record.id == task_id:
                return record
        return None

    def tasks_by_id(self) -> Dict[str, Task]:
        return {task.id: task for task in self.tasks}

    def assignments_for(self, task_id: str) -> List[AssignmentRecord]:
        return [a for a in self.assignments if a.task_id == task_id]

    def status_colors(self) -> Dict[str, str]:
        return {status.name: status.color for status in self.statuses}
