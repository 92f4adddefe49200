"""Unit tests for taskplan models.

This module tests the core data structures and their validation,
serialization, and state transitions.
"""

import dataclasses
import json

import pytest

from taskplan.errors import StructuralError, TransitionError, ValidationError
from taskplan.models import (
    Diff,
    DiffClassification,
    FileChange,
    FileChangeType,
    ObservedState,
    Plan,
    PlanStatus,
    Step,
    TaskDescription,
    TaskIntent,
    VerificationReport,
    path_issue,
)


def make_plan(**overrides):
    data = dict(
        id="plan-1",
        title="Add session timeout",
        description="Add session timeout",
        steps=[
            Step("step-1", "Review", "Know the code"),
            Step("step-2", "Implement", "Do the work", ("step-1",)),
            Step("step-3", "Test", "Prove it works", ("step-2",)),
        ],
        files=[
            FileChange("demo/session.py", FileChangeType.CREATE, "New module", "Own module"),
            FileChange("demo/auth.py", FileChangeType.MODIFY, "Wire it", "Entry point"),
        ],
        created_at="2026-01-01T00:00:00Z",
        intent=TaskIntent.FEATURE,
        scope=("session", "timeout"),
        baseline={"demo/session.py": None, "demo/auth.py": "abc123"},
    )
    data.update(overrides)
    return Plan(**data)


class TestSerialization:
    """Test cases for to_dict/from_dict."""

    def test_plan_round_trip(self):
        plan = make_plan()
        restored = Plan.from_dict(json.loads(json.dumps(plan.to_dict())))

        assert restored == plan
        assert [step.id for step in restored.steps] == ["step-1", "step-2", "step-3"]
        assert restored.steps[1].dependencies == ("step-1",)

    def test_plan_to_dict_uses_enum_values(self):
        data = make_plan(status=PlanStatus.IN_PROGRESS).to_dict()

        assert data["status"] == "in-progress"
        assert data["intent"] == "feature"
        assert data["files"][0]["type"] == "create"

    def test_task_description_round_trip(self):
        task = TaskDescription("Fix bug", "Fix bug", TaskIntent.BUGFIX, ("bug",))
        assert TaskDescription.from_dict(task.to_dict()) == task


class TestStatusTransitions:
    """Test cases for forward-only status changes."""

    def test_advance_forward(self):
        plan = make_plan()
        plan.advance_status("in-progress")

        assert plan.status is PlanStatus.IN_PROGRESS
        assert plan.updated_at is not None

    def test_skip_to_completed(self):
        plan = make_plan()
        plan.advance_status(PlanStatus.COMPLETED)
        assert plan.status is PlanStatus.COMPLETED

    @pytest.mark.parametrize("target", ["draft", "in-progress", "completed"])
    def test_completed_plan_cannot_move(self, target):
        plan = make_plan(status=PlanStatus.COMPLETED)
        with pytest.raises(TransitionError):
            plan.advance_status(target)
        assert plan.status is PlanStatus.COMPLETED

    def test_backward_move_rejected(self):
        plan = make_plan(status=PlanStatus.IN_PROGRESS)
        with pytest.raises(TransitionError, match="only advances"):
            plan.advance_status(PlanStatus.DRAFT)

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            make_plan().advance_status("paused")

    def test_status_rank(self):
        assert PlanStatus.DRAFT.rank < PlanStatus.IN_PROGRESS.rank < PlanStatus.COMPLETED.rank


class TestStepCompletion:
    """Test cases for step toggling."""

    def test_completing_step_starts_draft_plan(self):
        plan = make_plan()
        step = plan.set_step_completed("step-1")

        assert step.completed is True
        assert plan.status is PlanStatus.IN_PROGRESS

    def test_unknown_step(self):
        with pytest.raises(StructuralError, match="Unknown step id 'step-9'"):
            make_plan().set_step_completed("step-9")

    def test_completed_plan_steps_are_locked(self):
        plan = make_plan(status=PlanStatus.COMPLETED)
        with pytest.raises(TransitionError):
            plan.set_step_completed("step-1")

    def test_uncompleting_keeps_status(self):
        plan = make_plan()
        plan.set_step_completed("step-1")
        plan.set_step_completed("step-1", completed=False)

        assert plan.get_step("step-1").completed is False
        assert plan.status is PlanStatus.IN_PROGRESS

    def test_ready_steps_and_progress(self):
        plan = make_plan()
        assert [step.id for step in plan.ready_steps()] == ["step-1"]

        plan.set_step_completed("step-1")
        assert [step.id for step in plan.ready_steps()] == ["step-2"]
        assert plan.progress() == {"total": 3, "completed": 1, "remaining": 2}


class TestValidation:
    """Test cases for Plan.validate."""

    def test_valid_plan(self):
        assert make_plan().validate() == []

    def test_reports_structural_problems(self):
        plan = make_plan(
            steps=[
                Step("a", "A", "reason", ("b",)),
                Step("b", "B", ""),
                Step("b", "B again", "reason"),
                Step("c", "C", "reason", ("c", "zzz")),
            ]
        )
        issues = plan.validate()

        assert "Duplicate step id 'b'" in issues
        assert "Step 'b' has no reasoning" in issues
        assert "Step 'c' depends on unknown step 'zzz'" in issues
        assert "Step 'c' depends on itself" in issues
        assert "Step 'a' appears before its dependency 'b'" in issues

    def test_reports_bad_paths(self):
        plan = make_plan(
            files=[
                FileChange("../secrets.txt", FileChangeType.CREATE, "", ""),
                FileChange("a.py", FileChangeType.CREATE, "", ""),
                FileChange("a.py", FileChangeType.MODIFY, "", ""),
            ]
        )
        issues = plan.validate()

        assert any("traverse" in issue for issue in issues)
        assert "Duplicate file change for 'a.py'" in issues


class TestPathIssue:
    @pytest.mark.parametrize("path", ["src/app.py", "README.md", "a/b/c.test.ts"])
    def test_safe_paths(self, path):
        assert path_issue(path) is None

    @pytest.mark.parametrize("path", ["", "  ", "/etc/passwd", "C:\\x", "~/notes", "a/../b", "a\x00b"])
    def test_unsafe_paths(self, path):
        assert path_issue(path) is not None


class TestImmutability:
    def test_file_change_type_cannot_be_edited(self):
        change = FileChange("a.py", FileChangeType.CREATE, "", "")
        with pytest.raises(dataclasses.FrozenInstanceError):
            change.type = FileChangeType.DELETE

    def test_task_description_is_frozen(self):
        task = TaskDescription("t", "t", TaskIntent.FEATURE)
        with pytest.raises(dataclasses.FrozenInstanceError):
            task.intent = TaskIntent.TEST


class TestVerificationReport:
    def test_summary_and_passed(self):
        change = FileChange("a.py", FileChangeType.CREATE, "", "")
        diffs = [
            Diff("a.py", change, ObservedState.CREATED, DiffClassification.MATCH),
            Diff("b.py", None, ObservedState.MODIFIED, DiffClassification.UNEXPECTED),
            Diff("c.py", change, None, None, error="The file could not be compared."),
        ]
        report = VerificationReport("plan-1", diffs, VerificationReport.summarize(diffs))

        assert report.summary == {"match": 1, "missing": 0, "unexpected": 1, "mismatched": 0, "error": 1}
        assert report.passed is False
        assert [diff.path for diff in report.diffs_by(DiffClassification.UNEXPECTED)] == ["b.py"]

    def test_all_matches_pass(self):
        change = FileChange("a.py", FileChangeType.DELETE, "", "")
        diffs = [Diff("a.py", change, ObservedState.ABSENT, DiffClassification.MATCH)]
        report = VerificationReport("plan-1", diffs, VerificationReport.summarize(diffs))

        assert report.passed is True
        assert report.to_dict()["diffs"][0]["observed"] == "absent"
