"""Drag-and-drop gestures on the planner grid.

A drag carries its whole meaning in the transfer payload: moving a task bar,
or dragging its start or end handle. Drops are decoded once, validated
against the current task data and turned into intents for the controller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Set, Tuple, Union

from .layout import extract_interval
from .models import Task, TaskPlacement
from .months import INVALID_MONTH, parse_month
from .planner_logging import log_gesture_rejected

logger = logging.getLogger("planboard.gestures")

TRANSFER_TYPE = "application/json"

RESIZE_START = "start"
RESIZE_END = "end"


@dataclass(frozen=True, slots=True)
class MovePayload:
    task_id: str
    source_programmer_name: str


@dataclass(frozen=True, slots=True)
class ResizeStartPayload:
    task_id: str


@dataclass(frozen=True, slots=True)
class ResizeEndPayload:
    task_id: str


DragPayload = Union[MovePayload, ResizeStartPayload, ResizeEndPayload]


@dataclass(frozen=True, slots=True)
class MoveIntent:
    task_id: str
    old_programmer_name: str
    new_programmer_name: str
    new_month: str


@dataclass(frozen=True, slots=True)
class ResizeIntent:
    task_id: str
    start_month: Optional[str] = None
    end_month: Optional[str] = None


DropIntent = Union[MoveIntent, ResizeIntent]


def encode_payload(payload: DragPayload) -> str:
    """Serialise a payload as drag transfer data."""
    if isinstance(payload, MovePayload):
        data = {"taskId": payload.task_id, "oldProgrammerName": payload.source_programmer_name}
    elif isinstance(payload, ResizeStartPayload):
        data = {"taskId": payload.task_id, "resizeDirection": RESIZE_START}
    elif isinstance(payload, ResizeEndPayload):
        data = {"taskId": payload.task_id, "resizeDirection": RESIZE_END}
    else:
        raise TypeError(f"Unsupported drag payload: {payload!r}")
    return json.dumps(data)


def decode_payload(raw: Union[str, bytes, Mapping[str, Any], None]) -> Optional[DragPayload]:
    """Parse drag transfer data; anything unrecognised yields ``None``."""
    if raw is None:
        return None
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.debug(f"Undecodable drag payload: {raw!r}")
            return None
    else:
        data = raw
    if not isinstance(data, Mapping):
        return None

    task_id = data.get("taskId")
    if task_id is None or task_id == "":
        return None
    task_id = str(task_id)

    direction = data.get("resizeDirection")
    if direction == RESIZE_START:
        return ResizeStartPayload(task_id)
    if direction == RESIZE_END:
        return ResizeEndPayload(task_id)
    if direction:
        return None

    source = data.get("oldProgrammerName")
    if isinstance(source, str) and source:
        return MovePayload(task_id, source)
    return None


def validate_resize(task: Task, payload: Union[ResizeStartPayload, ResizeEndPayload], month: str) -> Optional[ResizeIntent]:
    """Accept a handle drop only if start stays on or before end."""
    planner_task = extract_interval(task)
    if planner_task is None:
        return None
    target = parse_month(month)
    if target == INVALID_MONTH:
        return None
    if isinstance(payload, ResizeStartPayload):
        if target <= planner_task.end_number:
            return ResizeIntent(task.id, start_month=month)
        return None
    if target >= planner_task.start_number:
        return ResizeIntent(task.id, end_month=month)
    return None


def interpret_drop(
    payload: Optional[DragPayload],
    target_programmer_name: str,
    target_month: str,
    tasks: Mapping[str, Task],
) -> Optional[DropIntent]:
    """Turn a drop on ``(programmer, month)`` into an intent, or ``None`` for a no-op."""
    if payload is None:
        return None
    task = tasks.get(payload.task_id)
    if task is None:
        log_gesture_rejected(payload.task_id, "unknown task")
        return None

    if isinstance(payload, MovePayload):
        if parse_month(target_month) == INVALID_MONTH:
            log_gesture_rejected(task.id, "invalid target month", month=target_month)
            return None
        return MoveIntent(
            task_id=task.id,
            old_programmer_name=payload.source_programmer_name,
            new_programmer_name=target_programmer_name,
            new_month=target_month,
        )

    intent = validate_resize(task, payload, target_month)
    if intent is None:
        log_gesture_rejected(task.id, "resize would invert start and end", month=target_month)
    return intent


Cell = Tuple[str, str]


@dataclass(slots=True)
class DragSession:
    """Visual state of a drag on the planner grid.

    The dragged element is dimmed while in flight, and the cell under the
    pointer is highlighted whether or not the drop will be accepted.
    """

    busy_tasks: Set[str] = field(default_factory=set)
    payload: Optional[DragPayload] = None
    source_opacity: float = 1.0
    highlighted_cell: Optional[Cell] = None

    @property
    def active(self) -> bool:
        return self.payload is not None

    def can_drag(self, payload: DragPayload, placement: Optional[TaskPlacement] = None) -> bool:
        if payload.task_id in self.busy_tasks:
            return False
        if placement is None:
            return True
        if isinstance(payload, MovePayload):
            return placement.movable
        if isinstance(payload, ResizeStartPayload):
            return placement.start_handle_enabled
        return placement.end_handle_enabled

    def begin(self, payload: DragPayload, placement: Optional[TaskPlacement] = None) -> Optional[str]:
        """Start dragging; returns the transfer data, or ``None`` if the element is disabled."""
        if not self.can_drag(payload, placement):
            return None
        self.payload = payload
        self.source_opacity = 0.5
        return encode_payload(payload)

    def drag_over(self, programmer_name: str, month: str) -> None:
        self.highlighted_cell = (programmer_name, month)

    def drag_leave(self, programmer_name: str, month: str) -> None:
        if self.highlighted_cell == (programmer_name, month):
            self.highlighted_cell = None

    def drop(
        self,
        programmer_name: str,
        month: str,
        tasks: Mapping[str, Task],
        transfer_data: Union[str, Mapping[str, Any], None] = None,
    ) -> Optional[DropIntent]:
        """Drop on a cell. ``transfer_data`` wins over the session payload when given."""
        self.highlighted_cell = None
        payload = decode_payload(transfer_data) if transfer_data is not None else self.payload
        return interpret_drop(payload, programmer_name, month, tasks)

    def end(self) -> None:
        self.payload = None
        self.source_opacity = 1.0
        self.highlighted_cell = None
