"""Shared fixtures for the Planboard test suite."""

import asyncio

import pytest

from planboard.models import (
    UNASSIGNED_NAME,
    Assignment,
    AssignmentRecord,
    Programmer,
    Task,
    TaskRecord,
)
from planboard.planner_logging import performance_monitor
from planboard.repository import JsonFileRepository


def make_task(task_id, start_date=None, assignments=(), status="Asignado", requirement=None):
    """Build a joined task from ``(programmer_name, end_date)`` pairs."""
    return Task(
        id=task_id,
        requirement=requirement or f"Requirement {task_id}",
        status=status,
        start_date=start_date,
        assignments=[Assignment(name, end) for name, end in assignments],
    )


@pytest.fixture(autouse=True)
def clean_performance_monitor():
    performance_monitor.clear()
    yield
    performance_monitor.clear()


@pytest.fixture
def programmers():
    return [
        Programmer("1", "Ana", "#3B82F6"),
        Programmer("2", "Bruno", "#F59E0B"),
        Programmer("3", "Carla", "#10B981"),
        Programmer("9", UNASSIGNED_NAME, "#9CA3AF"),
    ]


@pytest.fixture
def seeded_repository(tmp_path, programmers):
    """JSON repository with task T (start 2023-10, Ana until 2024-01) and task U (unplanned)."""
    repository = JsonFileRepository(tmp_path)
    asyncio.run(repository.seed(
        programmers=programmers,
        tasks=[
            TaskRecord(id="T", requirement="Invoice export", status="En proceso", start_date="2023-10"),
            TaskRecord(id="U", requirement="Login audit"),
        ],
        assignments=[AssignmentRecord("T", "1", "2024-01")],
    ))
    return repository


@pytest.fixture
def task_factory():
    return make_task
