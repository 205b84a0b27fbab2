"""MCP server exposing the Planboard course planner."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from planboard.controller import PlannerController
from planboard.months import CourseWindow
from planboard.planner_logging import setup_logging
from planboard.render import describe_layout, render_text_grid
from planboard.repository import JsonFileRepository
from planboard.store import planner_candidates

mcp = FastMCP("planboard")

logger = logging.getLogger("planboard.server")


PROJECT_MARKER_DIRECTORIES = (".planboard",)
SERVER_ROOT = Path(__file__).resolve().parent

_controllers: Dict[Path, PlannerController] = {}


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    if SERVER_ROOT not in bases:
        bases.append(SERVER_ROOT)
    seen: set[Path] = set()
    ordered: List[Path] = []
    for base in bases:
        if base not in seen:
            seen.add(base)
            ordered.append(base)
    return ordered


def _locate_workspace_root() -> Optional[Path]:
    markers = list(PROJECT_MARKER_DIRECTORIES)
    storage_dir = os.getenv(JsonFileRepository.STORAGE_DIR_ENV)
    if storage_dir and storage_dir not in markers:
        markers.insert(0, storage_dir)
    for base in _candidate_bases():
        for marker in markers:
            if (base / marker).exists():
                return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv("PLANBOARD_PROJECT_ROOT")
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable PLANBOARD_PROJECT_ROOT points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        "or set the PLANBOARD_PROJECT_ROOT environment variable."
    )


def _controller(root: Optional[str]) -> PlannerController:
    resolved = _resolve_root(root)
    controller = _controllers.get(resolved)
    if controller is None:
        controller = PlannerController(JsonFileRepository(resolved))
        _controllers[resolved] = controller
        logger.info(f"Planner controller created for {resolved}")
    return controller


def _window(start_year: Optional[int], offset: int) -> CourseWindow:
    window = CourseWindow(start_year) if start_year is not None else CourseWindow.current()
    return window.shift(offset) if offset else window


@mcp.tool()
async def get_planner_layout(
    start_year: Optional[int] = None,
    offset: int = 0,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Lay out the planner for one course (September to August).

    Defaults to the course containing today; ``offset`` pages by whole courses.
    Returns one lane per programmer with the tracks and positions of every visible task."""

    controller = _controller(root)
    loaded = await controller.refresh()
    if "error" in loaded:
        return loaded

    window = _window(start_year, offset)
    lanes = controller.layout(window)
    layout = describe_layout(lanes, window, controller.state.status_colors())
    layout["message"] = f"Course {window.title}: {sum(len(l.placements()) for l in lanes)} task bars."
    return layout


@mcp.tool()
async def move_task(
    task_id: str,
    old_programmer: str,
    new_programmer: str,
    month: str,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Move a task bar from one programmer's lane to a (programmer, end month) cell."""

    controller = _controller(root)
    return await controller.on_task_move(task_id, old_programmer, new_programmer, month)


@mcp.tool()
async def resize_task(
    task_id: str,
    start_month: Optional[str] = None,
    end_month: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Drag a task's start handle (start_month) or end handle (end_month, applied to every assignee)."""

    controller = _controller(root)
    return await controller.on_task_resize(task_id, start_month=start_month, end_month=end_month)


@mcp.tool()
async def drop_on_cell(
    transfer_data: str,
    programmer: str,
    month: str,
    start_year: Optional[int] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Drop raw drag transfer data (JSON with taskId and oldProgrammerName or resizeDirection) on a cell.

    ``start_year`` is the displayed course; it defaults to the course containing ``month``.
    Drops of bars not shown there, or grabbed by a disabled handle, are refused."""

    controller = _controller(root)
    window = CourseWindow(start_year) if start_year is not None else None
    return await controller.handle_drop(transfer_data, programmer, month, window)


@mcp.tool()
async def assign_to_planner(
    task_ids: List[str],
    programmer: str,
    month: str,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Assign tasks to a programmer until ``month`` from an empty planner cell.

    Tasks without a start month get ``month`` as their start."""

    controller = _controller(root)
    return await controller.assign_to_planner(task_ids, programmer, month)


@mcp.tool()
async def list_planner_candidates(
    search: str = "",
    show_completed: bool = False,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List tasks that can be assigned from the planner, filtered by requirement text or id."""

    controller = _controller(root)
    loaded = await controller.refresh()
    if "error" in loaded:
        return loaded
    candidates = planner_candidates(controller.state.tasks, search=search, show_completed=show_completed)
    return {
        "tasks": [task.to_dict() for task in candidates],
        "count": len(candidates),
    }


@mcp.tool()
async def list_activity(limit: int = 20, root: Optional[str] = None) -> Dict[str, Any]:
    """Most recent activity log entries, newest first."""

    controller = _controller(root)
    entries = await controller.repository.list_activity_log(limit=limit)
    return {"entries": [entry.to_dict() for entry in entries]}


@mcp.resource("planboard://planner")
async def resource_planner() -> str:
    """Text grid of the current course for quick inspection."""

    try:
        controller = _controller(None)
    except ValueError:
        return "No project root detected. Launch tools with a 'root' argument or set PLANBOARD_PROJECT_ROOT."

    loaded = await controller.refresh()
    if "error" in loaded:
        return loaded["message"]
    window = CourseWindow.current()
    lanes = controller.layout(window)
    if not lanes:
        return f"Planner {window.title}\n\nNo programmers have been registered yet."
    return render_text_grid(lanes, window)


def main() -> None:
    log_file = os.getenv("PLANBOARD_LOG_FILE")
    setup_logging(os.getenv("PLANBOARD_LOG_LEVEL", "INFO").upper(), Path(log_file) if log_file else None)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
