"""Task/assignment persistence for Planboard.

``TaskRepository`` is the asynchronous contract the planner controller talks
to. ``JsonFileRepository`` keeps every collection in one JSON document inside
the project's storage directory and rewrites it atomically on each mutation,
so an assignment reconciliation and its task update land together or not at
all.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import (
    DEFAULT_STATUSES,
    ActivityLogEntry,
    AssignmentRecord,
    Programmer,
    StatusStyle,
    TaskRecord,
)
from .months import is_valid_month
from .planner_logging import (
    log_error_with_context,
    log_operation,
    log_performance,
    observability_hooks,
)
from .reconcile import AssignmentDiff

logger = logging.getLogger("planboard.repository")

COLLECTIONS = ("tasks", "task_assignments", "programmers", "statuses", "activity_log")

SEQUENCES_KEY = "sequences"

TASK_FIELDS = {"requirement", "module", "status", "target", "link", "start_date"}


class RepositoryError(RuntimeError):
    """Storage could not be read or written."""


@dataclass(slots=True)
class PlannerSnapshot:
    """Everything the planner needs, fetched in one go."""

    tasks: List[TaskRecord] = field(default_factory=list)
    assignments: List[AssignmentRecord] = field(default_factory=list)
    programmers: List[Programmer] = field(default_factory=list)
    statuses: List[StatusStyle] = field(default_factory=list)


class TaskRepository(ABC):
    """Asynchronous document store for tasks and their assignment records."""

    @abstractmethod
    async def list_tasks(self) -> List[TaskRecord]: ...

    @abstractmethod
    async def list_assignments(self) -> List[AssignmentRecord]: ...

    @abstractmethod
    async def list_programmers(self) -> List[Programmer]: ...

    @abstractmethod
    async def list_statuses(self) -> List[StatusStyle]: ...

    @abstractmethod
    async def upsert_task(self, task_id: str, fields: Dict[str, Any]) -> None:
        """Merge ``fields`` into the task; unspecified fields stay untouched."""

    @abstractmethod
    async def upsert_assignment(self, record: AssignmentRecord) -> str:
        """Create or update one assignment record and return its record id."""

    @abstractmethod
    async def delete_assignment(self, record_id: str) -> None: ...

    @abstractmethod
    async def apply_assignment_diff(
        self,
        task_id: str,
        diff: AssignmentDiff,
        task_fields: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        """Apply a reconciliation (and optional task update) as one unit.

        Returns the record ids allocated for inserted records.
        """

    @abstractmethod
    async def add_activity_log(self, entry: ActivityLogEntry) -> ActivityLogEntry: ...

    @abstractmethod
    async def list_activity_log(self, limit: Optional[int] = None) -> List[ActivityLogEntry]: ...

    async def fetch_all(self) -> PlannerSnapshot:
        tasks, assignments, programmers, statuses = await asyncio.gather(
            self.list_tasks(),
            self.list_assignments(),
            self.list_programmers(),
            self.list_statuses(),
        )
        return PlannerSnapshot(tasks, assignments, programmers, statuses)

    async def assignments_for(self, task_id: str) -> List[AssignmentRecord]:
        return [a for a in await self.list_assignments() if a.task_id == task_id]


def _next_id(data: Dict[str, Any], collection: str) -> str:
    """Allocate the next numeric id; deleted ids are never handed out again."""
    sequences = data.setdefault(SEQUENCES_KEY, {})
    highest = sequences.get(collection, 0)
    for row in data[collection]:
        try:
            highest = max(highest, int(row.get("id")))
        except (TypeError, ValueError):
            continue
    sequences[collection] = highest + 1
    return str(highest + 1)


def _check_task_fields(fields: Dict[str, Any]) -> None:
    unknown = set(fields) - TASK_FIELDS
    if unknown:
        raise ValueError(f"Unknown task fields: {sorted(unknown)}")
    start = fields.get("start_date")
    if start is not None and not is_valid_month(start):
        raise ValueError(f"start_date must be YYYY-MM, got: {start!r}")


def _check_month(value: str) -> None:
    if not is_valid_month(value):
        raise ValueError(f"end_date must be YYYY-MM, got: {value!r}")


class JsonFileRepository(TaskRepository):
    """Repository backed by ``<root>/<storage dir>/planner.json``."""

    STORAGE_DIR_ENV = "PLANBOARD_STORAGE_DIR"
    DEFAULT_STORAGE_DIR = ".planboard"
    FILE_NAME = "planner.json"

    def __init__(self, root: Path | str, storage_dir: Optional[str] = None):
        self.root = Path(root).resolve()
        name = storage_dir or os.getenv(self.STORAGE_DIR_ENV) or self.DEFAULT_STORAGE_DIR
        self.base_dir = self.root / name
        self.data_path = self.base_dir / self.FILE_NAME
        self._lock = asyncio.Lock()

        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log_error_with_context(e, {"operation": "repository_init", "root": str(self.root)})
            raise RepositoryError(f"Could not initialize storage at {self.base_dir}: {e}") from e

        logger.info(f"Repository initialized at {self.data_path}")
        observability_hooks.log_planner_event("repository_initialized", root=str(self.root))

    # ------------------------------------------------------------------
    # Raw document access
    # ------------------------------------------------------------------

    def _read(self) -> Dict[str, List[Dict[str, Any]]]:
        if not self.data_path.exists():
            return {name: [] for name in COLLECTIONS}
        try:
            data = json.loads(self.data_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RepositoryError(f"Unreadable planner data at {self.data_path}: {e}") from e
        if not isinstance(data, dict):
            raise RepositoryError(f"Planner data at {self.data_path} is not a JSON object")
        for name in COLLECTIONS:
            data.setdefault(name, [])
        return data

    def _write(self, data: Dict[str, List[Dict[str, Any]]]) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=".planner-", suffix=".json", dir=self.base_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
            os.replace(tmp_name, self.data_path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise RepositoryError(f"Could not write planner data to {self.data_path}: {e}") from e

    async def _load(self) -> Dict[str, List[Dict[str, Any]]]:
        return await asyncio.to_thread(self._read)

    async def _mutate(self, operation: str, change, **context) -> Any:
        """Read, apply ``change(data)`` and write back under the repository lock."""
        async with self._lock:
            with log_operation(operation, **context):
                data = await self._load()
                result = change(data)
                await asyncio.to_thread(self._write, data)
                return result

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_tasks(self) -> List[TaskRecord]:
        data = await self._load()
        return [TaskRecord.from_dict(row) for row in data["tasks"]]

    async def list_assignments(self) -> List[AssignmentRecord]:
        data = await self._load()
        return [AssignmentRecord.from_dict(row) for row in data["task_assignments"]]

    async def list_programmers(self) -> List[Programmer]:
        data = await self._load()
        return [Programmer.from_dict(row) for row in data["programmers"]]

    async def list_statuses(self) -> List[StatusStyle]:
        data = await self._load()
        if not data["statuses"]:
            return list(DEFAULT_STATUSES)
        return [StatusStyle.from_dict(row) for row in data["statuses"]]

    async def fetch_all(self) -> PlannerSnapshot:
        data = await self._load()
        statuses = [StatusStyle.from_dict(row) for row in data["statuses"]] or list(DEFAULT_STATUSES)
        return PlannerSnapshot(
            tasks=[TaskRecord.from_dict(row) for row in data["tasks"]],
            assignments=[AssignmentRecord.from_dict(row) for row in data["task_assignments"]],
            programmers=[Programmer.from_dict(row) for row in data["programmers"]],
            statuses=statuses,
        )

    async def list_activity_log(self, limit: Optional[int] = None) -> List[ActivityLogEntry]:
        data = await self._load()
        entries = [ActivityLogEntry.from_dict(row) for row in data["activity_log"]]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit] if limit is not None else entries

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    def _merge_task(data: Dict[str, List[Dict[str, Any]]], task_id: str, fields: Dict[str, Any]) -> None:
        for row in data["tasks"]:
            if str(row.get("id")) == task_id:
                row.update(fields)
                return
        created = TaskRecord(id=task_id, requirement=fields.get("requirement", "")).to_dict()
        created.update(fields)
        data["tasks"].append(created)

    @log_performance("upsert_task")
    async def upsert_task(self, task_id: str, fields: Dict[str, Any]) -> None:
        if not task_id:
            raise ValueError("Task ID cannot be empty")
        _check_task_fields(fields)
        await self._mutate(
            "upsert_task",
            lambda data: self._merge_task(data, task_id, fields),
            task_id=task_id,
            fields=sorted(fields),
        )

    @staticmethod
    def _put_assignment(data: Dict[str, List[Dict[str, Any]]], record: AssignmentRecord) -> str:
        rows = data["task_assignments"]
        for row in rows:
            same_id = record.record_id is not None and str(row.get("id")) == record.record_id
            same_pair = (
                str(row.get("task_id")) == record.task_id
                and str(row.get("programmer_id")) == record.programmer_id
            )
            if same_id or same_pair:
                row["task_id"] = record.task_id
                row["programmer_id"] = record.programmer_id
                row["end_date"] = record.end_date
                return str(row["id"])
        new_id = record.record_id or _next_id(data, "task_assignments")
        rows.append(AssignmentRecord(
            task_id=record.task_id,
            programmer_id=record.programmer_id,
            end_date=record.end_date,
            record_id=new_id,
        ).to_dict())
        return new_id

    @log_performance("upsert_assignment")
    async def upsert_assignment(self, record: AssignmentRecord) -> str:
        _check_month(record.end_date)
        return await self._mutate(
            "upsert_assignment",
            lambda data: self._put_assignment(data, record),
            task_id=record.task_id,
            programmer_id=record.programmer_id,
        )

    async def delete_assignment(self, record_id: str) -> None:
        def change(data):
            data["task_assignments"] = [
                row for row in data["task_assignments"] if str(row.get("id")) != record_id
            ]

        await self._mutate("delete_assignment", change, record_id=record_id)

    @log_performance("apply_assignment_diff")
    async def apply_assignment_diff(
        self,
        task_id: str,
        diff: AssignmentDiff,
        task_fields: Optional[Dict[str, Any]] = None,
    ) -> List[str]:
        if not task_id:
            raise ValueError("Task ID cannot be empty")
        if diff.task_id != task_id:
            raise ValueError(f"Diff for task {diff.task_id} applied to task {task_id}")
        if task_fields:
            _check_task_fields(task_fields)
        for record in diff.updates + diff.inserts:
            _check_month(record.end_date)

        def change(data):
            if task_fields:
                self._merge_task(data, task_id, task_fields)
            doomed = {r.record_id for r in diff.deletes}
            data["task_assignments"] = [
                row for row in data["task_assignments"] if str(row.get("id")) not in doomed
            ]
            for record in diff.updates:
                self._put_assignment(data, record)
            return [self._put_assignment(data, record) for record in diff.inserts]

        return await self._mutate(
            "apply_assignment_diff",
            change,
            task_id=task_id,
            **diff.summary(),
        )

    async def add_activity_log(self, entry: ActivityLogEntry) -> ActivityLogEntry:
        def change(data):
            entry.id = _next_id(data, "activity_log")
            data["activity_log"].append(entry.to_dict())
            return entry

        return await self._mutate("add_activity_log", change, task_id=entry.task_id)

    async def seed(
        self,
        *,
        tasks: Optional[List[TaskRecord]] = None,
        assignments: Optional[List[AssignmentRecord]] = None,
        programmers: Optional[List[Programmer]] = None,
        statuses: Optional[List[StatusStyle]] = None,
    ) -> None:
        """Append records in bulk; assignments without a record id get one."""
        def change(data):
            data["tasks"].extend(t.to_dict() for t in tasks or [])
            data["programmers"].extend(p.to_dict() for p in programmers or [])
            data["statuses"].extend(s.to_dict() for s in statuses or [])
            for record in assignments or []:
                self._put_assignment(data, record)

        await self._mutate("seed", change)
