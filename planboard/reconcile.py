"""Diff a task's desired assignments against its persisted assignment records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Tuple, Union

from .models import AssignmentRecord

DesiredAssignments = Union[Mapping[str, str], Iterable[Tuple[str, str]]]


@dataclass(slots=True)
class AssignmentDiff:
    """Record changes needed to bring one task's assignments to a desired state."""

    task_id: str
    deletes: List[AssignmentRecord] = field(default_factory=list)
    updates: List[AssignmentRecord] = field(default_factory=list)
    inserts: List[AssignmentRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.deletes or self.updates or self.inserts)

    def summary(self) -> Dict[str, int]:
        return {
            "deleted": len(self.deletes),
            "updated": len(self.updates),
            "inserted": len(self.inserts),
        }

    def to_dict(self) -> Dict[str, object]:
        return {
            "task_id": self.task_id,
            "deletes": [r.to_dict() for r in self.deletes],
            "updates": [r.to_dict() for r in self.updates],
            "inserts": [r.to_dict() for r in self.inserts],
        }


def _desired_map(desired: DesiredAssignments) -> Dict[str, str]:
    # A programmer appears once per task: a repeated id replaces the earlier end month.
    pairs = desired.items() if isinstance(desired, Mapping) else desired
    result: Dict[str, str] = {}
    for programmer_id, end_date in pairs:
        result[str(programmer_id)] = end_date
    return result


def reconcile_assignments(
    task_id: str,
    desired: DesiredAssignments,
    existing: Iterable[AssignmentRecord],
) -> AssignmentDiff:
    """Compute the minimal delete/update/insert set for ``task_id``.

    ``desired`` maps programmer id to end month. Records of other tasks in
    ``existing`` are ignored. Updated records keep their record id; inserted
    records have ``record_id=None`` until the repository allocates one.
    """
    wanted = _desired_map(desired)
    diff = AssignmentDiff(task_id=task_id)
    seen: Dict[str, AssignmentRecord] = {}

    for record in existing:
        if record.task_id != task_id:
            continue
        if record.programmer_id not in wanted or record.programmer_id in seen:
            # Stray duplicates for the same programmer are removed too.
            diff.deletes.append(record)
            continue
        seen[record.programmer_id] = record
        new_end = wanted[record.programmer_id]
        if record.end_date != new_end:
            diff.updates.append(AssignmentRecord(
                task_id=task_id,
                programmer_id=record.programmer_id,
                end_date=new_end,
                record_id=record.record_id,
            ))

    for programmer_id, end_date in wanted.items():
        if programmer_id not in seen:
            diff.inserts.append(AssignmentRecord(
                task_id=task_id,
                programmer_id=programmer_id,
                end_date=end_date,
            ))

    return diff


def desired_after_move(
    existing: Iterable[AssignmentRecord],
    task_id: str,
    old_programmer_id: str | None,
    new_programmer_id: str,
    new_month: str,
) -> Dict[str, str]:
    """Desired assignments after dragging one programmer's bar to a new lane/month."""
    desired = {r.programmer_id: r.end_date for r in existing if r.task_id == task_id}
    if old_programmer_id is not None and old_programmer_id != new_programmer_id:
        desired.pop(old_programmer_id, None)
    desired[new_programmer_id] = new_month
    return desired


def desired_after_resize_end(
    existing: Iterable[AssignmentRecord],
    task_id: str,
    new_month: str,
) -> Dict[str, str]:
    """Every assignee of the task moves to the same new end month."""
    return {r.programmer_id: new_month for r in existing if r.task_id == task_id}
