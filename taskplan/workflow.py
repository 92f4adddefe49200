"""Workflow management for taskplan.

This module wires the plan pipeline together: classify a task, analyze the
workspace, assemble and persist a plan, track step progress, and verify the
implementation. Public methods return result dictionaries; failures become
``error``/``suggestion``/``message`` entries with full detail sent to the
diagnostic log.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .analysis import CancellationToken, WorkspaceAnalyzer, detect_changes
from .assembler import PlanAssembler, topological_order, validate_candidates
from .classifier import TaskClassifier
from .config import PlannerConfig
from .errors import (
    AnalysisError,
    CycleError,
    OperationCancelled,
    PlanNotFoundError,
    StructuralError,
    TransitionError,
    ValidationError,
    describe_error,
)
from .lexicon import DEFAULT_LEXICON
from .messages import PlanUpdatedMessage, RequestDataMessage, StepCompletedMessage, parse_message, plan_updated
from .models import Plan, PlanStatus, utc_now
from .notifier import LoggingNotifier, Notifier
from .store import PlanStore
from .strategy import generate_candidates
from .taskplan_logging import (
    log,
    log_error_with_context,
    log_operation,
    log_performance,
    log_plan_generated,
    log_status_changed,
    log_step_updated,
)
from .verifier import PlanVerifier

_SUGGESTIONS = (
    (ValidationError, "Check the input: task descriptions must be non-empty text with letters or numbers."),
    (CycleError, "Remove the circular dependency between the listed steps."),
    (StructuralError, "Check step ids and dependencies, or regenerate the plan with generate_plan."),
    (TransitionError, "Plan status only moves forward: draft, in-progress, completed."),
    (PlanNotFoundError, "Use list_plans to find a plan id, or generate_plan to create one."),
    (AnalysisError, "Make sure the workspace root exists and is readable."),
    (OperationCancelled, "Run the operation again when ready."),
)


def _suggestion_for(error: BaseException) -> str:
    for error_type, suggestion in _SUGGESTIONS:
        if isinstance(error, error_type):
            return suggestion
    return "See the diagnostic log for details."


class PlanWorkflow:
    """Manages the plan lifecycle for one workspace root.

    Mutations of stored plans are serialized behind a single lock; reads
    never block each other beyond that.
    """

    def __init__(
        self,
        root: Path | str,
        config: Optional[PlannerConfig] = None,
        notifier: Optional[Notifier] = None,
        *,
        classifier: Optional[TaskClassifier] = None,
        assembler: Optional[PlanAssembler] = None,
        verifier: Optional[PlanVerifier] = None,
        store: Optional[PlanStore] = None,
        analyzer: Optional[WorkspaceAnalyzer] = None,
    ):
        self.root = Path(root).expanduser().resolve()
        self.config = config or PlannerConfig.from_env()
        self.notifier = notifier or LoggingNotifier()
        self.classifier = classifier or TaskClassifier(DEFAULT_LEXICON, self.config.max_description_length)
        self.assembler = assembler or PlanAssembler(
            strategy=lambda task, analysis: generate_candidates(task, analysis, self.config.max_relevant_files)
        )
        self.verifier = verifier or PlanVerifier()
        self.store = store or PlanStore(self.root, self.config.storage_dir)
        self.analyzer = analyzer or WorkspaceAnalyzer(self.root, self.config)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _failure(self, error: BaseException, operation: str, **context: Any) -> Dict[str, Any]:
        log_error_with_context(error, {"operation": operation, "root": str(self.root), **context})
        message = describe_error(error)
        self.notifier.notify_error(message)
        return {
            "error": message,
            "error_type": type(error).__name__,
            "suggestion": _suggestion_for(error),
            "message": f"Error: {message}",
        }

    @staticmethod
    def _plan_view(plan: Plan) -> Dict[str, Any]:
        return {
            "plan_id": plan.id,
            "plan": plan.to_dict(),
            "status": plan.status.value,
            "progress": plan.progress(),
            "ready_steps": [step.id for step in plan.ready_steps()],
        }

    # ------------------------------------------------------------------
    # Plan generation and retrieval
    # ------------------------------------------------------------------

    @log_performance("generate_plan")
    def generate_plan(self, description: str, cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """Classify ``description``, analyze the workspace and store a new draft plan."""
        try:
            with log_operation("generate_plan", root=str(self.root)):
                task = self.classifier.classify(description)
                analysis = self.analyzer.analyze(cancel_token)
                plan = self.assembler.assemble(task, analysis)
                with self._lock:
                    self.store.save_baseline(plan.id, analysis)
                    self.store.save(plan, make_current=True)
        except Exception as e:
            return self._failure(e, "generate_plan", description_length=len(description) if isinstance(description, str) else 0)

        log_plan_generated(plan.id, len(plan.steps), len(plan.files), intent=plan.intent.value)
        self.notifier.notify_info(f"Plan generated with {len(plan.steps)} steps and {len(plan.files)} file changes.")
        return {
            **self._plan_view(plan),
            "task": task.to_dict(),
            "next_suggested_step": "complete_step",
            "workflow_tip": "Work through ready_steps, marking each done with complete_step, then run verify_plan.",
            "message": f"Plan {plan.id} generated: {len(plan.steps)} steps, {len(plan.files)} file changes.",
        }

    def show_plan(self, plan_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a stored plan, or the current plan when ``plan_id`` is omitted."""
        try:
            plan = self.store.resolve(plan_id)
        except Exception as e:
            return self._failure(e, "show_plan", plan_id=plan_id)
        return {**self._plan_view(plan), "message": f"Plan {plan.id} is {plan.status.value}."}

    def list_plans(self) -> Dict[str, Any]:
        try:
            plans = self.store.list_plans()
            current = self.store.current_plan_id()
        except Exception as e:
            return self._failure(e, "list_plans")
        return {
            "plans": plans,
            "count": len(plans),
            "current_plan_id": current,
            "message": f"Found {len(plans)} plans" if plans else "No plans generated yet. Use generate_plan to create one.",
        }

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_plan(self, plan_id: Optional[str] = None, cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """Compare the plan's declared file changes with the workspace as it is now."""
        try:
            with log_operation("verify_plan", root=str(self.root), plan_id=plan_id):
                plan = self.store.resolve(plan_id)
                current = self.analyzer.analyze(cancel_token)
                baseline = self.store.load_baseline(plan.id)
                observed = detect_changes(baseline, current) if baseline is not None else None
                report = self.verifier.verify(plan, current, observed_changes=observed, cancel_token=cancel_token)
        except Exception as e:
            return self._failure(e, "verify_plan", plan_id=plan_id)

        summary = report.summary
        if report.passed:
            self.notifier.notify_info("Implementation matches the plan.")
        else:
            self.notifier.notify_info(
                f"Verification found {summary['missing']} missing, {summary['mismatched']} mismatched and "
                f"{summary['unexpected']} unexpected changes."
            )
        return {
            "plan_id": plan.id,
            "passed": report.passed,
            "summary": summary,
            "report": report.to_dict(),
            "message": "All declared changes match." if report.passed else "Implementation differs from the plan.",
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _set_step(self, step_id: str, completed: bool, plan_id: Optional[str]) -> Plan:
        with self._lock:
            plan = self.store.resolve(plan_id)
            previous = plan.status
            plan.set_step_completed(step_id, completed)
            self.store.save(plan)
        log_step_updated(plan.id, step_id, completed)
        if plan.status is not previous:
            log_status_changed(plan.id, plan.status.value)
        return plan

    def _advance(self, status: Union[PlanStatus, str], plan_id: Optional[str]) -> Plan:
        with self._lock:
            plan = self.store.resolve(plan_id)
            plan.advance_status(status)
            self.store.save(plan)
        log_status_changed(plan.id, plan.status.value)
        return plan

    def _apply_update(self, incoming: Plan) -> Plan:
        """Replace a stored plan with an edited copy of itself."""
        with self._lock:
            current = self.store.load(incoming.id)
            if current.status is PlanStatus.COMPLETED:
                raise TransitionError("Plan is completed; it can no longer change")
            if incoming.status.rank < current.status.rank:
                raise TransitionError(
                    f"Cannot move plan from '{current.status.value}' to '{incoming.status.value}'; status only advances"
                )
            for change in incoming.files:
                existing = current.get_file_change(change.path)
                if existing is not None and existing.type is not change.type:
                    raise StructuralError(f"File change type for '{change.path}' cannot change")

            validate_candidates(incoming.steps, incoming.files)
            incoming.steps = topological_order(incoming.steps)
            issues = incoming.validate()
            if issues:
                raise StructuralError("Invalid plan structure: " + "; ".join(issues))

            snapshot = self.store.load_baseline(incoming.id)
            baseline: Dict[str, Optional[str]] = {}
            for change in incoming.files:
                if change.path in current.baseline:
                    baseline[change.path] = current.baseline[change.path]
                else:
                    info = snapshot.get_file(change.path) if snapshot is not None else None
                    baseline[change.path] = info.digest if info is not None else None

            incoming.baseline = baseline
            incoming.created_at = current.created_at
            incoming.updated_at = utc_now()
            self.store.save(incoming)

        if incoming.status is not current.status:
            log_status_changed(incoming.id, incoming.status.value)
        log(
            "Applied plan update",
            {"plan_id": incoming.id, "steps": len(incoming.steps), "files": len(incoming.files)},
            logger_name="taskplan.workflow",
        )
        return incoming

    def complete_step(self, step_id: str, completed: bool = True, plan_id: Optional[str] = None) -> Dict[str, Any]:
        """Mark a step done (or not done)."""
        try:
            plan = self._set_step(step_id, completed, plan_id)
        except Exception as e:
            return self._failure(e, "complete_step", plan_id=plan_id, step_id=step_id)

        step = plan.get_step(step_id)
        progress = plan.progress()
        return {
            **self._plan_view(plan),
            "step": step.to_dict() if step else None,
            "next_suggested_step": "verify_plan" if progress["remaining"] == 0 else "complete_step",
            "message": f"Step {step_id} marked {'complete' if completed else 'incomplete'}; "
            f"{progress['remaining']} of {progress['total']} steps remaining.",
        }

    def advance_status(self, status: str, plan_id: Optional[str] = None) -> Dict[str, Any]:
        try:
            plan = self._advance(status, plan_id)
        except Exception as e:
            return self._failure(e, "advance_status", plan_id=plan_id, status=status)
        return {**self._plan_view(plan), "message": f"Plan {plan.id} is now {plan.status.value}."}

    # ------------------------------------------------------------------
    # UI messages
    # ------------------------------------------------------------------

    def handle_message(self, raw: Union[str, bytes, Dict[str, Any]], plan_id: Optional[str] = None) -> Dict[str, Any]:
        """Validate and dispatch one inbound UI message.

        Every successful message is answered with a ``planUpdated`` reply
        carrying the stored plan.
        """
        try:
            message = parse_message(raw)
            if isinstance(message, StepCompletedMessage):
                plan = self._set_step(message.data.step_id, message.data.completed, plan_id)
            elif isinstance(message, PlanUpdatedMessage):
                incoming = message.data.plan.to_plan()
                if plan_id and incoming.id != plan_id:
                    raise StructuralError("Plan update must keep the plan id")
                plan = self._apply_update(incoming)
            elif isinstance(message, RequestDataMessage):
                plan = self.store.resolve(plan_id)
            else:
                raise ValidationError(f"Unsupported message type: {type(message).__name__}")
        except Exception as e:
            return self._failure(e, "handle_message", plan_id=plan_id)

        return {
            "handled": message.type,
            "plan_id": plan.id,
            "reply": plan_updated(plan),
            "message": f"Handled {message.type} for plan {plan.id}.",
        }
