"""Planner layout: from joined tasks to per-programmer tracks.

The pipeline is interval extraction -> clipping to the course window ->
greedy track packing. Everything here is pure: the functions only look at
their arguments, so they are safe to call on every render.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import (
    AssignedProgrammer,
    AssignmentRecord,
    PlannerTask,
    Programmer,
    ProgrammerLane,
    Task,
    TaskPlacement,
    TaskRecord,
    join_tasks,
    programmer_ref,
)
from .months import COURSE_LENGTH, INVALID_MONTH, CourseWindow, parse_month
from .planner_logging import log_layout_computed, log_performance


def latest_end_date(task: Task) -> Optional[str]:
    """Latest non-empty assignment end month, compared numerically."""
    latest: Optional[str] = None
    latest_number = INVALID_MONTH
    for assignment in task.assignments:
        if not assignment.end_date:
            continue
        number = parse_month(assignment.end_date)
        if latest is None or number > latest_number:
            latest = assignment.end_date
            latest_number = number
    return latest


def extract_interval(task: Task) -> Optional[PlannerTask]:
    """Resolve the month range a task occupies, or ``None`` if it cannot be placed.

    The start falls back to the latest end when the task has no start month,
    and the end falls back to the start when nobody has an end month.
    """
    latest_end = latest_end_date(task)
    effective_start = task.start_date or latest_end
    effective_end = latest_end or task.start_date
    if not effective_start or not effective_end:
        return None

    start_number = parse_month(effective_start)
    end_number = parse_month(effective_end)
    if start_number == INVALID_MONTH or end_number == INVALID_MONTH:
        return None
    if start_number > end_number:
        return None

    return PlannerTask(
        task=task,
        effective_start=effective_start,
        effective_end=effective_end,
        start_number=start_number,
        end_number=end_number,
    )


@dataclass(frozen=True, slots=True)
class ClippedTask:
    """A placeable task reduced to the columns it covers in the window."""

    planner_task: PlannerTask
    start_index: int
    end_index: int

    @property
    def duration(self) -> int:
        return self.end_index - self.start_index + 1


def clip_to_window(planner_task: PlannerTask, window: CourseWindow) -> Optional[ClippedTask]:
    """Intersect a task with the course window; ``None`` when nothing is visible."""
    if not window.overlaps(planner_task.start_number, planner_task.end_number):
        return None
    start_index = max(planner_task.start_number, window.view_start) - window.view_start
    end_index = min(planner_task.end_number, window.view_end) - window.view_start
    if end_index - start_index + 1 <= 0:
        return None
    return ClippedTask(planner_task, start_index, end_index)


def _overlaps(candidate: ClippedTask, member: ClippedTask) -> bool:
    return candidate.start_index <= member.end_index and candidate.end_index >= member.start_index


def pack_tracks(clipped: Iterable[ClippedTask]) -> List[List[ClippedTask]]:
    """Greedy interval partitioning into the lowest non-overlapping track.

    Sorting is stable on ``(start_index, end_index)`` so unchanged input
    always lands on the same tracks.
    """
    ordered = sorted(clipped, key=lambda c: (c.start_index, c.end_index))
    tracks: List[List[ClippedTask]] = []
    for candidate in ordered:
        for track in tracks:
            if not any(_overlaps(candidate, member) for member in track):
                track.append(candidate)
                break
        else:
            tracks.append([candidate])
    return tracks


def _placement(clipped: ClippedTask, track_index: int, window: CourseWindow) -> TaskPlacement:
    # Handles are only live when the real start is on screen.
    starts_in_view = clipped.planner_task.start_number >= window.view_start
    return TaskPlacement(
        planner_task=clipped.planner_task,
        track_index=track_index,
        start_index=clipped.start_index,
        duration=clipped.duration,
        columns=COURSE_LENGTH,
        movable=starts_in_view,
        start_handle_enabled=starts_in_view,
        end_handle_enabled=True,
    )


def layout_lane(programmer: Programmer, tasks: Sequence[Task], window: CourseWindow) -> ProgrammerLane:
    """Tracks for one programmer: every visible task that programmer is assigned to."""
    clipped: List[ClippedTask] = []
    for task in tasks:
        if not task.is_assigned_to(programmer.name):
            continue
        planner_task = extract_interval(task)
        if planner_task is None:
            continue
        visible = clip_to_window(planner_task, window)
        if visible is not None:
            clipped.append(visible)

    lane = ProgrammerLane(programmer=programmer)
    for track_index, track in enumerate(pack_tracks(clipped)):
        lane.tracks.append([_placement(c, track_index, window) for c in track])
    return lane


@log_performance("layout_tasks")
def layout_tasks(
    tasks: Sequence[Task],
    programmers: Sequence[Programmer],
    window: CourseWindow,
) -> List[ProgrammerLane]:
    """Lay out already-joined tasks, one lane per real programmer in the given order."""
    lanes = [
        layout_lane(programmer, tasks, window)
        for programmer in programmers
        if isinstance(programmer_ref(programmer), AssignedProgrammer)
    ]
    log_layout_computed(window.title, len(lanes), sum(len(lane.placements()) for lane in lanes))
    return lanes


def layout_planner(
    tasks: Sequence[TaskRecord],
    assignments: Sequence[AssignmentRecord],
    programmers: Sequence[Programmer],
    window: CourseWindow,
) -> List[ProgrammerLane]:
    """Join raw records and lay them out for ``window``."""
    joined = join_tasks(list(tasks), list(assignments), list(programmers))
    return layout_tasks(joined, programmers, window)


def placement_index(lanes: Iterable[ProgrammerLane]) -> List[Tuple[str, str, int, int, int]]:
    """Flatten lanes to ``(programmer, task_id, track, start, duration)`` rows."""
    rows = []
    for lane in lanes:
        for placement in lane.placements():
            rows.append((
                lane.programmer.name,
                placement.task_id,
                placement.track_index,
                placement.start_index,
                placement.duration,
            ))
    return rows
