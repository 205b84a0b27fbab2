"""Planner controller: applies drag gestures and planner assignments.

The controller is the only place that writes. Each accepted gesture is
reconciled against the persisted assignment records, written in one
repository call, logged to the activity log, and followed by a full state
reload. Failures are logged and reported through a notification; nothing
is rolled back locally, the next reload resynchronises.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from .gestures import DragSession, MoveIntent, MovePayload, ResizeIntent, decode_payload
from .layout import extract_interval, layout_tasks
from .models import (
    UNASSIGNED,
    ActivityLogEntry,
    AssignedProgrammer,
    ProgrammerLane,
    Task,
    TaskPlacement,
    programmer_ref,
    resolve_programmer,
)
from .months import INVALID_MONTH, CourseWindow, parse_month
from .planner_logging import (
    log_error_with_context,
    log_gesture_rejected,
    log_operation,
    log_planner_assignment,
    log_task_moved,
    log_task_resized,
    observability_hooks,
)
from .reconcile import (
    AssignmentDiff,
    desired_after_move,
    desired_after_resize_end,
    reconcile_assignments,
)
from .repository import TaskRepository
from .store import PlannerState

logger = logging.getLogger("planboard.controller")

USER_ENV = "PLANBOARD_USER"

ACTION_PLANNER_UPDATED = "Planner updated"
ACTION_PLANNER_ASSIGNMENT = "Planner assignment"

Notifier = Callable[[str, str], None]


def _rejected(task_id: Optional[str], reason: str, **fields: Any) -> Dict[str, Any]:
    log_gesture_rejected(task_id, reason, **fields)
    return {"accepted": False, "task_id": task_id, "reason": reason, "message": f"No change: {reason}"}


class PlannerController:
    """Owns the state store and turns planner gestures into repository writes."""

    def __init__(
        self,
        repository: TaskRepository,
        state: Optional[PlannerState] = None,
        user: Optional[str] = None,
        notify: Optional[Notifier] = None,
    ):
        self.repository = repository
        self.state = state or PlannerState(repository)
        self.user = user or os.getenv(USER_ENV, "planner")
        self._notify = notify
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self.in_flight: Set[str] = set()
        self.drag_session = DragSession(busy_tasks=self.in_flight)

    # ------------------------------------------------------------------
    # State and layout
    # ------------------------------------------------------------------

    async def ensure_loaded(self) -> PlannerState:
        if not self.state.loaded:
            await self.state.reload()
        return self.state

    async def refresh(self) -> Dict[str, Any]:
        """Reload everything from the repository."""
        try:
            await self.state.reload()
        except Exception as e:
            log_error_with_context(e, {"operation": "refresh"})
            self.notify("Error", "Could not load planner data.")
            return {"error": f"Failed to load planner data: {e}", "message": f"Error: {e}"}
        return {
            "tasks": len(self.state.tasks),
            "programmers": len(self.state.programmers),
            "message": "Planner data loaded",
        }

    def layout(self, window: CourseWindow) -> List[ProgrammerLane]:
        return layout_tasks(self.state.tasks, self.state.programmers, window)

    def notify(self, message: str, sub_message: str = "") -> None:
        """Surface a transient message to whoever renders the planner."""
        observability_hooks.log_planner_event("notification", message=message, sub_message=sub_message)
        if self._notify is not None:
            try:
                self._notify(message, sub_message)
            except Exception as e:
                logger.error(f"Notifier failed: {e}")

    @asynccontextmanager
    async def _task_guard(self, task_id: str):
        # One gesture per task at a time, held until the reload has landed.
        # The lock is forgotten once its last holder or waiter leaves.
        lock = self._locks.setdefault(task_id, asyncio.Lock())
        self._lock_users[task_id] = self._lock_users.get(task_id, 0) + 1
        try:
            async with lock:
                self.in_flight.add(task_id)
                try:
                    yield
                finally:
                    self.in_flight.discard(task_id)
        finally:
            self._lock_users[task_id] -= 1
            if not self._lock_users[task_id]:
                del self._lock_users[task_id]
                del self._locks[task_id]

    def _placeholder_ids(self) -> Set[str]:
        return {p.id for p in self.state.programmers if programmer_ref(p) is UNASSIGNED}

    def _reconcile(self, task_id: str, desired: Dict[str, str]) -> AssignmentDiff:
        placeholders = self._placeholder_ids()
        real = {pid: end for pid, end in desired.items() if pid not in placeholders}
        return reconcile_assignments(task_id, real, self.state.assignments_for(task_id))

    async def _record_activity(self, task: Task, action: str, details: str) -> None:
        await self.repository.add_activity_log(ActivityLogEntry(
            task_id=task.id,
            task_requirement=task.requirement,
            user=self.user,
            action=action,
            details=details,
        ))

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    async def on_task_move(
        self,
        task_id: str,
        old_programmer_name: str,
        new_programmer_name: str,
        new_month: str,
    ) -> Dict[str, Any]:
        """Move one programmer's bar to another lane and/or end month."""
        await self.ensure_loaded()
        async with self._task_guard(task_id):
            task = self.state.task(task_id)
            if task is None:
                return _rejected(task_id, "unknown task")
            new_month_number = parse_month(new_month)
            if new_month_number == INVALID_MONTH:
                return _rejected(task_id, "invalid month", month=new_month)

            new_ref = resolve_programmer(new_programmer_name, self.state.programmers)
            if not isinstance(new_ref, AssignedProgrammer):
                return _rejected(task_id, "target programmer cannot be resolved", programmer=new_programmer_name)
            old_ref = resolve_programmer(old_programmer_name, self.state.programmers)
            old_id = old_ref.id if isinstance(old_ref, AssignedProgrammer) else None

            existing = self.state.assignments_for(task_id)
            diff = self._reconcile(task_id, desired_after_move(existing, task_id, old_id, new_ref.id, new_month))

            task_fields = None
            if not task.start_date or parse_month(task.start_date) > new_month_number:
                task_fields = {"start_date": new_month}

            try:
                with log_operation("task_move", task_id=task_id, programmer=new_ref.name, month=new_month):
                    await self.repository.apply_assignment_diff(task_id, diff, task_fields)
                    await self._record_activity(
                        task,
                        ACTION_PLANNER_UPDATED,
                        f"Moved to {new_ref.name} to finish in {new_month}.",
                    )
                    await self.state.reload()
            except Exception as e:
                log_error_with_context(e, {
                    "operation": "task_move",
                    "task_id": task_id,
                    "old_programmer": old_programmer_name,
                    "new_programmer": new_programmer_name,
                    "new_month": new_month,
                })
                self.notify("Error", "Could not move the task.")
                return {"accepted": False, "task_id": task_id, "error": f"Failed to move task: {e}", "message": f"Error: {e}"}

        log_task_moved(task_id, old_programmer_name, new_ref.name, new_month, **diff.summary())
        return {
            "accepted": True,
            "task_id": task_id,
            "changes": diff.to_dict(),
            "start_date_updated": task_fields is not None,
            "message": f"Task {task_id} moved to {new_ref.name} until {new_month}.",
        }

    async def on_task_resize(
        self,
        task_id: str,
        start_month: Optional[str] = None,
        end_month: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Move the start edge (task start month) or the end edge (every assignee's end month)."""
        await self.ensure_loaded()
        if start_month is None and end_month is None:
            return _rejected(task_id, "nothing to resize")

        async with self._task_guard(task_id):
            task = self.state.task(task_id)
            if task is None:
                return _rejected(task_id, "unknown task")
            planner_task = extract_interval(task)
            if planner_task is None:
                return _rejected(task_id, "task has no placeable date range")

            new_start = parse_month(start_month) if start_month is not None else planner_task.start_number
            new_end = parse_month(end_month) if end_month is not None else planner_task.end_number
            if new_start == INVALID_MONTH or new_end == INVALID_MONTH:
                return _rejected(task_id, "invalid month", start_month=start_month, end_month=end_month)
            if new_start > new_end:
                return _rejected(task_id, "resize would invert start and end", start_month=start_month, end_month=end_month)

            if end_month is not None:
                existing = self.state.assignments_for(task_id)
                diff = self._reconcile(task_id, desired_after_resize_end(existing, task_id, end_month))
            else:
                diff = AssignmentDiff(task_id=task_id)
            task_fields = {"start_date": start_month} if start_month is not None else None

            change = f"Start: {start_month}" if start_month is not None else f"End: {end_month}"
            try:
                with log_operation("task_resize", task_id=task_id, start_month=start_month, end_month=end_month):
                    await self.repository.apply_assignment_diff(task_id, diff, task_fields)
                    await self._record_activity(task, ACTION_PLANNER_UPDATED, f"Dates adjusted. {change}.")
                    await self.state.reload()
            except Exception as e:
                log_error_with_context(e, {
                    "operation": "task_resize",
                    "task_id": task_id,
                    "start_month": start_month,
                    "end_month": end_month,
                })
                self.notify("Error", "Could not adjust the task.")
                return {"accepted": False, "task_id": task_id, "error": f"Failed to resize task: {e}", "message": f"Error: {e}"}

        log_task_resized(task_id, start_month, end_month, **diff.summary())
        return {
            "accepted": True,
            "task_id": task_id,
            "changes": diff.to_dict(),
            "message": f"Task {task_id} dates adjusted. {change}.",
        }

    def _placement(self, task_id: str, window: CourseWindow, lane_name: Optional[str] = None) -> Optional[TaskPlacement]:
        found = None
        for lane in self.layout(window):
            placement = lane.find(task_id)
            if placement is None:
                continue
            if lane_name is None or lane.programmer.name == lane_name:
                return placement
            found = found or placement
        return found

    async def handle_drop(
        self,
        transfer_data: Any,
        programmer_name: str,
        month: str,
        window: Optional[CourseWindow] = None,
    ) -> Dict[str, Any]:
        """Decode a drop on a planner cell and dispatch it.

        ``window`` is the course the cell belongs to; by default the course
        containing ``month``. The dragged bar must be visible there with the
        grabbed part enabled, otherwise the drop is refused.
        """
        await self.ensure_loaded()
        payload = decode_payload(transfer_data)
        if payload is None:
            return _rejected(None, "unrecognised drag payload")
        if payload.task_id in self.in_flight:
            return _rejected(payload.task_id, "task is being updated")

        window = window or CourseWindow.containing(month)
        if window is not None:
            if not window.contains(month):
                return _rejected(payload.task_id, "cell outside the course", course=window.title, month=month)
            source = payload.source_programmer_name if isinstance(payload, MovePayload) else None
            placement = self._placement(payload.task_id, window, source)
            if placement is None:
                return _rejected(payload.task_id, "task is not on the planner", course=window.title)
            if not self.drag_session.can_drag(payload, placement):
                return _rejected(payload.task_id, "drag handle disabled", course=window.title)

        intent = self.drag_session.drop(programmer_name, month, self.state.tasks_by_id(), transfer_data)
        self.drag_session.end()
        if intent is None:
            return {"accepted": False, "task_id": payload.task_id, "reason": "drop rejected", "message": "No change"}
        if isinstance(intent, MoveIntent):
            return await self.on_task_move(
                intent.task_id,
                intent.old_programmer_name,
                intent.new_programmer_name,
                intent.new_month,
            )
        if isinstance(intent, ResizeIntent):
            return await self.on_task_resize(intent.task_id, intent.start_month, intent.end_month)
        return _rejected(payload.task_id, "unsupported intent")

    # ------------------------------------------------------------------
    # Planner modal
    # ------------------------------------------------------------------

    async def assign_to_planner(self, task_ids: Sequence[str], programmer_name: str, month: str) -> Dict[str, Any]:
        """Assign tasks to a programmer until ``month``, from an empty planner cell."""
        await self.ensure_loaded()
        if parse_month(month) == INVALID_MONTH:
            return {"assigned": [], "error": f"Invalid month: {month}", "message": f"Error: invalid month {month}"}
        ref = resolve_programmer(programmer_name, self.state.programmers)
        if not isinstance(ref, AssignedProgrammer):
            return {
                "assigned": [],
                "error": f"Unknown programmer: {programmer_name}",
                "message": f"Error: cannot assign to {programmer_name}",
            }

        assigned: List[str] = []
        try:
            for task_id in task_ids:
                async with self._task_guard(task_id):
                    task = self.state.task(task_id)
                    if task is None:
                        logger.debug(f"Skipping unknown task {task_id} in planner assignment")
                        continue
                    desired = {a.programmer_id: a.end_date for a in self.state.assignments_for(task_id)}
                    desired[ref.id] = month
                    diff = self._reconcile(task_id, desired)
                    task_fields = None if task.start_date else {"start_date": month}

                    with log_operation("planner_assignment", task_id=task_id, programmer=ref.name, month=month):
                        await self.repository.apply_assignment_diff(task_id, diff, task_fields)
                        await self._record_activity(
                            task,
                            ACTION_PLANNER_ASSIGNMENT,
                            f"Assigned to {ref.name} in {month}.",
                        )
                        await self.state.reload()
                    assigned.append(task_id)
                log_planner_assignment(task_id, ref.name, month)
        except Exception as e:
            log_error_with_context(e, {
                "operation": "assign_to_planner",
                "task_ids": list(task_ids),
                "programmer": programmer_name,
                "month": month,
            })
            self.notify("Error", "Could not assign the task.")
            return {"assigned": assigned, "error": f"Failed to assign tasks: {e}", "message": f"Error: {e}"}

        self.notify("Assignment complete", f"{len(assigned)} task(s) assigned to {ref.name}.")
        return {
            "assigned": assigned,
            "programmer": ref.name,
            "month": month,
            "message": f"{len(assigned)} task(s) assigned to {ref.name}.",
        }
