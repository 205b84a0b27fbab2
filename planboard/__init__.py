"""Planboard - course planner layout and assignment engine."""

# Submodules are imported by name; the package itself stays empty.

__all__ = [
    "colors",
    "controller",
    "gestures",
    "layout",
    "models",
    "months",
    "planner_logging",
    "reconcile",
    "render",
    "repository",
    "store",
]
