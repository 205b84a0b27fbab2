"""Unit tests for layout presentation."""

from datetime import date

from planboard.layout import layout_tasks
from planboard.months import CourseWindow
from planboard.render import describe_layout, render_text_grid


class TestDescribeLayout:
    """Test cases for the JSON layout view."""

    def test_months_and_lanes(self, programmers, task_factory):
        window = CourseWindow(2023)
        tasks = [task_factory("T", "2023-10", [("Ana", "2024-01")], status="Asignado")]
        lanes = layout_tasks(tasks, programmers, window)

        view = describe_layout(lanes, window, {"Asignado": "#ffffff"}, today=date(2023, 11, 2))

        assert view["course"] == "23/24"
        assert view["months"][0] == {"month": "2023-09", "label": "SEP/23", "is_past": True}
        assert view["months"][2]["is_past"] is False
        assert [lane["programmer"]["name"] for lane in view["lanes"]] == ["Ana", "Bruno", "Carla"]

        pill = view["lanes"][0]["tracks"][0][0]
        assert pill["task_id"] == "T"
        assert (pill["start_index"], pill["duration"]) == (1, 4)
        assert pill["background"] == "#ffffff"
        assert pill["border"] == "#cccccc"
        assert pill["text_color"] == "#1f2937"

    def test_unknown_status_uses_default_color(self, programmers, task_factory):
        window = CourseWindow(2023)
        lanes = layout_tasks([task_factory("T", "2023-10", [("Ana", "2023-10")], status="Custom")], programmers, window)

        pill = describe_layout(lanes, window, {})["lanes"][0]["tracks"][0][0]

        assert pill["background"] == "#cccccc"


class TestRenderTextGrid:
    """Test cases for the plain-text planner."""

    def test_grid_rows(self, programmers, task_factory):
        window = CourseWindow(2023)
        tasks = [
            task_factory("T1", "2023-09", [("Ana", "2023-11")]),
            task_factory("T2", "2023-10", [("Ana", "2023-10")]),
        ]

        grid = render_text_grid(layout_tasks(tasks, programmers, window), window)
        lines = grid.splitlines()

        assert lines[0] == "Planner 23/24"
        assert "SEP/23" in lines[2]
        assert lines[3].startswith("Ana")
        assert lines[3].split()[1:4] == ["T1", "=", "="]
        assert lines[4].split()[:3] == [".", "T2", "."]
        assert lines[5].startswith("Bruno")
