"""Presentation of computed lanes: JSON-ready views and a plain-text grid."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .colors import darken_color, text_color_for
from .models import ProgrammerLane, TaskPlacement
from .months import CourseWindow

DEFAULT_STATUS_COLOR = "#cccccc"
CELL_WIDTH = 8


def placement_view(placement: TaskPlacement, status_colors: Mapping[str, str]) -> Dict[str, Any]:
    data = placement.to_dict()
    background = status_colors.get(placement.planner_task.task.status, DEFAULT_STATUS_COLOR)
    data["background"] = background
    data["border"] = darken_color(background, 20)
    data["text_color"] = text_color_for(background)
    return data


def lane_view(lane: ProgrammerLane, status_colors: Mapping[str, str]) -> Dict[str, Any]:
    color = lane.programmer.color
    return {
        "programmer": lane.programmer.to_dict(),
        "header_color": darken_color(color, 20),
        "header_text_color": text_color_for(color),
        "row_units": lane.row_units,
        "height_rem": lane.height_rem,
        "tracks": [[placement_view(p, status_colors) for p in track] for track in lane.tracks],
    }


def describe_layout(
    lanes: Sequence[ProgrammerLane],
    window: CourseWindow,
    status_colors: Mapping[str, str],
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Everything a client needs to draw the planner for ``window``."""
    return {
        "course": window.title,
        "start_year": window.start_year,
        "months": [
            {"month": month, "label": label, "is_past": window.is_past(month, today)}
            for month, label in zip(window.months, window.labels)
        ],
        "lanes": [lane_view(lane, status_colors) for lane in lanes],
    }


def _cell(text: str) -> str:
    return text[:CELL_WIDTH - 1].ljust(CELL_WIDTH)


def render_text_grid(lanes: Sequence[ProgrammerLane], window: CourseWindow) -> str:
    """Render lanes as a fixed-width grid, one line per track.

    A task shows its id in its first visible column and ``=`` in the rest.
    """
    name_width = max([len(lane.programmer.name) for lane in lanes] + [len("Course")]) + 2
    lines: List[str] = [f"Planner {window.title}", ""]
    lines.append("Course".ljust(name_width) + "".join(_cell(label) for label in window.labels))

    for lane in lanes:
        if not lane.tracks:
            lines.append(lane.programmer.name.ljust(name_width) + "".join(_cell(".") for _ in window.months))
            continue
        for track_index, track in enumerate(lane.tracks):
            cells = ["."] * len(window.months)
            for placement in track:
                cells[placement.start_index] = placement.task_id
                for column in range(placement.start_index + 1, placement.end_index + 1):
                    cells[column] = "="
            name = lane.programmer.name if track_index == 0 else ""
            lines.append(name.ljust(name_width) + "".join(_cell(c) for c in cells))

    return "\n".join(line.rstrip() for line in lines)
