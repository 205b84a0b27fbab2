"""Unit tests for assignment reconciliation."""

from planboard.models import AssignmentRecord
from planboard.reconcile import (
    AssignmentDiff,
    desired_after_move,
    desired_after_resize_end,
    reconcile_assignments,
)


def _records(*rows):
    return [AssignmentRecord(task_id, pid, end, record_id=rid) for rid, task_id, pid, end in rows]


class TestReconcileAssignments:
    """Test cases for reconcile_assignments."""

    def test_update_delete_insert(self):
        existing = _records(("10", "T", "P1", "2024-01"), ("11", "T", "P2", "2024-02"))

        diff = reconcile_assignments("T", {"P1": "2024-03", "P3": "2024-02"}, existing)

        assert [(r.record_id, r.programmer_id, r.end_date) for r in diff.updates] == [("10", "P1", "2024-03")]
        assert [r.record_id for r in diff.deletes] == ["11"]
        assert [(r.record_id, r.programmer_id, r.end_date) for r in diff.inserts] == [(None, "P3", "2024-02")]
        assert diff.summary() == {"deleted": 1, "updated": 1, "inserted": 1}

    def test_identical_state_is_empty(self):
        existing = _records(("10", "T", "P1", "2024-01"))

        diff = reconcile_assignments("T", {"P1": "2024-01"}, existing)

        assert diff.is_empty
        assert diff.summary() == {"deleted": 0, "updated": 0, "inserted": 0}

    def test_other_tasks_are_ignored(self):
        existing = _records(("10", "T", "P1", "2024-01"), ("20", "OTHER", "P2", "2024-05"))

        diff = reconcile_assignments("T", {}, existing)

        assert [r.record_id for r in diff.deletes] == ["10"]

    def test_duplicate_records_for_one_programmer_are_collapsed(self):
        existing = _records(("10", "T", "P1", "2024-01"), ("11", "T", "P1", "2024-04"))

        diff = reconcile_assignments("T", {"P1": "2024-01"}, existing)

        assert [r.record_id for r in diff.deletes] == ["11"]
        assert diff.updates == []
        assert diff.inserts == []

    def test_pairs_input_last_duplicate_wins(self):
        diff = reconcile_assignments("T", [("P1", "2024-01"), ("P1", "2024-06")], [])

        assert [(r.programmer_id, r.end_date) for r in diff.inserts] == [("P1", "2024-06")]

    def test_to_dict(self):
        diff = reconcile_assignments("T", {"P1": "2024-01"}, [])

        data = diff.to_dict()

        assert data["task_id"] == "T"
        assert data["inserts"] == [{"id": None, "task_id": "T", "programmer_id": "P1", "end_date": "2024-01"}]

    def test_empty_diff_default(self):
        assert AssignmentDiff(task_id="T").is_empty


class TestDesiredStates:
    """Test cases for the desired-state helpers used by gestures."""

    def test_move_within_same_programmer_changes_end_only(self):
        existing = _records(("10", "T", "P1", "2024-01"), ("11", "T", "P2", "2024-02"))

        desired = desired_after_move(existing, "T", "P1", "P1", "2024-04")

        assert desired == {"P1": "2024-04", "P2": "2024-02"}

    def test_move_to_other_programmer_drops_old(self):
        existing = _records(("10", "T", "P1", "2024-01"), ("11", "T", "P2", "2024-02"))

        desired = desired_after_move(existing, "T", "P1", "P3", "2024-04")

        assert desired == {"P2": "2024-02", "P3": "2024-04"}

    def test_move_onto_existing_assignee_merges(self):
        existing = _records(("10", "T", "P1", "2024-01"), ("11", "T", "P2", "2024-02"))

        desired = desired_after_move(existing, "T", "P1", "P2", "2024-05")

        assert desired == {"P2": "2024-05"}

    def test_move_from_unresolved_source_keeps_others(self):
        existing = _records(("10", "T", "P1", "2024-01"))

        desired = desired_after_move(existing, "T", None, "P2", "2024-05")

        assert desired == {"P1": "2024-01", "P2": "2024-05"}

    def test_resize_end_moves_every_assignee(self):
        existing = _records(("10", "T", "P1", "2024-01"), ("11", "T", "P2", "2024-02"), ("12", "X", "P3", "2024-02"))

        desired = desired_after_resize_end(existing, "T", "2024-06")

        assert desired == {"P1": "2024-06", "P2": "2024-06"}
