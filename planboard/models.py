"""Data models for the Planboard planner.

This module contains the persisted records (tasks, assignment records,
programmers, statuses, activity log entries), the joined task view consumed by
the planner, and the derived layout structures produced for rendering.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from .months import is_valid_month

# Name of the placeholder programmer used by the board for unassigned work.
UNASSIGNED_NAME = "Sin asignar"

FINISHED_STATUS = "Finalizado"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


@dataclass(slots=True)
class Programmer:
    """A team member; grouping key and drop target on the planner."""

    id: str
    name: str
    color: str = "#9CA3AF"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Programmer":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            color=data.get("color", "#9CA3AF"),
        )


@dataclass(frozen=True, slots=True)
class Unassigned:
    """The placeholder programmer. Never laid out, never persisted as an assignment."""


UNASSIGNED = Unassigned()


@dataclass(frozen=True, slots=True)
class AssignedProgrammer:
    """A real programmer that can own assignment records."""

    programmer: Programmer

    @property
    def id(self) -> str:
        return self.programmer.id

    @property
    def name(self) -> str:
        return self.programmer.name


ProgrammerRef = Union[Unassigned, AssignedProgrammer]


def programmer_ref(programmer: Programmer) -> ProgrammerRef:
    """Classify a stored programmer as the placeholder or a real programmer."""
    if programmer.name == UNASSIGNED_NAME:
        return UNASSIGNED
    return AssignedProgrammer(programmer)


def resolve_programmer(name: Optional[str], programmers: List[Programmer]) -> Optional[ProgrammerRef]:
    """Look a programmer up by name; ``None`` when nobody has that name."""
    if not name:
        return None
    for programmer in programmers:
        if programmer.name == name:
            return programmer_ref(programmer)
    return None


@dataclass(slots=True)
class StatusStyle:
    """Display colour for a task status."""

    name: str
    color: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusStyle":
        return cls(name=data["name"], color=data.get("color", "#cccccc"))


DEFAULT_STATUSES = [
    StatusStyle(UNASSIGNED_NAME, "#9CA3AF"),
    StatusStyle("Asignado", "#3B82F6"),
    StatusStyle("En proceso", "#F59E0B"),
    StatusStyle("Retrasado", "#EF4444"),
    StatusStyle("En testeo", "#8B5CF6"),
    StatusStyle(FINISHED_STATUS, "#10B981"),
    StatusStyle("Descartado", "#6B7280"),
]


@dataclass(slots=True)
class TaskRecord:
    """Persisted task document."""

    id: str
    requirement: str
    module: str = "N/A"
    status: str = UNASSIGNED_NAME
    target: str = "N/A"
    link: Optional[str] = None
    start_date: Optional[str] = None  # YYYY-MM

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requirement": self.requirement,
            "module": self.module,
            "status": self.status,
            "target": self.target,
            "link": self.link,
            "start_date": self.start_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskRecord":
        return cls(
            id=str(data["id"]),
            requirement=data.get("requirement", ""),
            module=data.get("module", "N/A"),
            status=data.get("status", UNASSIGNED_NAME),
            target=data.get("target", "N/A"),
            link=data.get("link"),
            start_date=data.get("start_date") or None,
        )

    def validate(self) -> List[str]:
        """Validate the record and return any issues."""
        issues = []
        if not self.id:
            issues.append("Task ID is required")
        if not self.requirement:
            issues.append("Requirement text is required")
        if self.start_date is not None and not is_valid_month(self.start_date):
            issues.append(f"Invalid start month: {self.start_date}")
        return issues


@dataclass(slots=True)
class AssignmentRecord:
    """Persisted link between a task and a programmer, valid until ``end_date``."""

    task_id: str
    programmer_id: str
    end_date: str  # YYYY-MM
    record_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.record_id,
            "task_id": self.task_id,
            "programmer_id": self.programmer_id,
            "end_date": self.end_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssignmentRecord":
        record_id = data.get("id")
        return cls(
            task_id=str(data["task_id"]),
            programmer_id=str(data["programmer_id"]),
            end_date=data.get("end_date", ""),
            record_id=str(record_id) if record_id is not None else None,
        )


@dataclass(frozen=True, slots=True)
class Assignment:
    """Joined assignment as seen by views: who works on the task and until when."""

    programmer_name: str
    end_date: str

    def to_dict(self) -> Dict[str, Any]:
        return {"programmer_name": self.programmer_name, "end_date": self.end_date}


@dataclass(slots=True)
class Task:
    """A task joined with its assignments, ready for the planner."""

    id: str
    requirement: str
    module: str = "N/A"
    status: str = UNASSIGNED_NAME
    target: str = "N/A"
    link: Optional[str] = None
    start_date: Optional[str] = None
    assignments: List[Assignment] = field(default_factory=list)

    @classmethod
    def from_record(cls, record: TaskRecord, assignments: List[Assignment]) -> "Task":
        return cls(
            id=record.id,
            requirement=record.requirement,
            module=record.module,
            status=record.status,
            target=record.target,
            link=record.link,
            start_date=record.start_date,
            assignments=list(assignments),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requirement": self.requirement,
            "module": self.module,
            "status": self.status,
            "target": self.target,
            "link": self.link,
            "start_date": self.start_date,
            "assignments": [a.to_dict() for a in self.assignments],
        }

    def programmer_names(self) -> List[str]:
        return [a.programmer_name for a in self.assignments]

    def is_assigned_to(self, programmer_name: str) -> bool:
        return any(a.programmer_name == programmer_name for a in self.assignments)


def join_tasks(
    records: List[TaskRecord],
    assignments: List[AssignmentRecord],
    programmers: List[Programmer],
) -> List[Task]:
    """Attach assignments to their tasks, resolving programmer ids to names.

    Assignment records pointing at unknown programmers are dropped.
    """
    by_id = {p.id: p for p in programmers}
    by_task: Dict[str, List[Assignment]] = {}
    for record in assignments:
        programmer = by_id.get(record.programmer_id)
        if programmer is None:
            continue
        by_task.setdefault(record.task_id, []).append(
            Assignment(programmer_name=programmer.name, end_date=record.end_date)
        )
    return [Task.from_record(r, by_task.get(r.id, [])) for r in records]


@dataclass(frozen=True, slots=True)
class PlannerTask:
    """A task with a resolved, valid, non-inverted month range."""

    task: Task
    effective_start: str
    effective_end: str
    start_number: int
    end_number: int

    @property
    def id(self) -> str:
        return self.task.id


@dataclass(frozen=True, slots=True)
class TaskPlacement:
    """Where one task sits inside one programmer lane."""

    planner_task: PlannerTask
    track_index: int
    start_index: int
    duration: int
    columns: int = 12
    movable: bool = True
    start_handle_enabled: bool = True
    end_handle_enabled: bool = True

    @property
    def task_id(self) -> str:
        return self.planner_task.id

    @property
    def end_index(self) -> int:
        return self.start_index + self.duration - 1

    @property
    def left_fraction(self) -> float:
        return self.start_index / self.columns

    @property
    def width_fraction(self) -> float:
        return self.duration / self.columns

    @property
    def top_rem(self) -> float:
        return self.track_index * 7.25 + 0.25

    def to_dict(self) -> Dict[str, Any]:
        task = self.planner_task.task
        return {
            "task_id": task.id,
            "requirement": task.requirement,
            "module": task.module,
            "status": task.status,
            "effective_start": self.planner_task.effective_start,
            "effective_end": self.planner_task.effective_end,
            "track_index": self.track_index,
            "start_index": self.start_index,
            "duration": self.duration,
            "left_fraction": self.left_fraction,
            "width_fraction": self.width_fraction,
            "top_rem": self.top_rem,
            "movable": self.movable,
            "start_handle_enabled": self.start_handle_enabled,
            "end_handle_enabled": self.end_handle_enabled,
        }


@dataclass(slots=True)
class ProgrammerLane:
    """All tracks of one programmer for the displayed course."""

    programmer: Programmer
    tracks: List[List[TaskPlacement]] = field(default_factory=list)

    @property
    def row_units(self) -> int:
        return max(1, len(self.tracks))

    @property
    def height_rem(self) -> float:
        return self.row_units * 7.5

    def placements(self) -> List[TaskPlacement]:
        return [placement for track in self.tracks for placement in track]

    def find(self, task_id: str) -> Optional[TaskPlacement]:
        for placement in self.placements():
            if placement.task_id == task_id:
                return placement
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "programmer": self.programmer.to_dict(),
            "row_units": self.row_units,
            "tracks": [[p.to_dict() for p in track] for track in self.tracks],
        }


@dataclass(slots=True)
class ActivityLogEntry:
    """Audit trail line written after planner changes."""

    task_id: str
    task_requirement: str
    user: str
    action: str
    details: str
    timestamp: str = field(default_factory=_utc_now)
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "task_requirement": self.task_requirement,
            "user": self.user,
            "timestamp": self.timestamp,
            "action": self.action,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActivityLogEntry":
        entry_id = data.get("id")
        return cls(
            id=str(entry_id) if entry_id is not None else None,
            task_id=str(data["task_id"]),
            task_requirement=data.get("task_requirement", ""),
            user=data.get("user", ""),
            timestamp=data.get("timestamp", _utc_now()),
            action=data.get("action", ""),
            details=data.get("details", ""),
        )
