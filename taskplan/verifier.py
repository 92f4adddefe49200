"""Plan verification: compare declared file changes with the workspace."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .analysis import CancellationToken
from .errors import AnalysisError, ComparisonError
from .models import (
    Diff,
    DiffClassification,
    FileChangeType,
    FileInfo,
    ObservedState,
    Plan,
    VerificationReport,
    WorkspaceAnalysis,
)
from .taskplan_logging import log_error_with_context, log_performance, log_plan_verified

logger = logging.getLogger("taskplan.verifier")

ObservedChanges = Union[Mapping[str, ObservedState], Iterable[str]]

_MATCH = DiffClassification.MATCH
_MISSING = DiffClassification.MISSING
_MISMATCHED = DiffClassification.MISMATCHED

CLASSIFICATION_TABLE: Dict[Tuple[FileChangeType, ObservedState], DiffClassification] = {
    (FileChangeType.CREATE, ObservedState.CREATED): _MATCH,
    (FileChangeType.CREATE, ObservedState.MODIFIED): _MATCH,
    (FileChangeType.CREATE, ObservedState.UNCHANGED): _MISMATCHED,
    (FileChangeType.CREATE, ObservedState.ABSENT): _MISSING,
    (FileChangeType.MODIFY, ObservedState.CREATED): _MATCH,
    (FileChangeType.MODIFY, ObservedState.MODIFIED): _MATCH,
    (FileChangeType.MODIFY, ObservedState.UNCHANGED): _MISSING,
    (FileChangeType.MODIFY, ObservedState.ABSENT): _MISSING,
    (FileChangeType.DELETE, ObservedState.CREATED): _MISMATCHED,
    (FileChangeType.DELETE, ObservedState.MODIFIED): _MISMATCHED,
    (FileChangeType.DELETE, ObservedState.UNCHANGED): _MISMATCHED,
    (FileChangeType.DELETE, ObservedState.ABSENT): _MATCH,
}


def classify(change_type: FileChangeType, observed: ObservedState) -> DiffClassification:
    return CLASSIFICATION_TABLE[(change_type, observed)]


def observe(path: str, baseline: Mapping[str, Optional[str]], index: Mapping[str, FileInfo]) -> ObservedState:
    """State of ``path`` in the current snapshot relative to the plan baseline.

    Raises:
        ComparisonError: when the file exists but could not be read.
    """
    info = index.get(path)
    if info is None:
        return ObservedState.ABSENT
    if info.error or info.digest is None:
        raise ComparisonError(path, f"File could not be read: {path}")

    recorded = baseline.get(path)
    if recorded is None:
        return ObservedState.CREATED
    if recorded == info.digest:
        return ObservedState.UNCHANGED
    return ObservedState.MODIFIED


def _observed_items(observed_changes: Optional[ObservedChanges], index: Mapping[str, FileInfo]) -> List[Tuple[str, ObservedState]]:
    if observed_changes is None:
        return []
    if isinstance(observed_changes, Mapping):
        items = [(path, ObservedState(state)) for path, state in observed_changes.items()]
    else:
        items = [
            (path, ObservedState.MODIFIED if path in index else ObservedState.ABSENT)
            for path in observed_changes
        ]
    return [(path, state) for path, state in items if state is not ObservedState.UNCHANGED]


class PlanVerifier:
    """Produce a :class:`VerificationReport` for a plan against a snapshot."""

    @log_performance("verify_plan")
    def verify(
        self,
        plan: Plan,
        current_state: WorkspaceAnalysis,
        *,
        observed_changes: Optional[ObservedChanges] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> VerificationReport:
        """Classify every declared change, then every undeclared observed change.

        A file that cannot be compared is recorded on its Diff and does not
        stop the remaining comparisons.
        """
        if not isinstance(current_state, WorkspaceAnalysis):
            raise AnalysisError("Workspace analysis is unavailable")

        token = cancel_token or CancellationToken()
        index = current_state.file_index()
        diffs: List[Diff] = []

        for change in plan.files:
            token.raise_if_cancelled("Verification")
            try:
                observed = observe(change.path, plan.baseline, index)
            except ComparisonError as exc:
                log_error_with_context(exc, {"operation": "verify_plan", "plan_id": plan.id, "path": change.path})
                diffs.append(Diff(change.path, change, None, None, error=exc.user_message))
                continue
            diffs.append(Diff(change.path, change, observed, classify(change.type, observed)))

        declared = {change.path for change in plan.files}
        for path, state in _observed_items(observed_changes, index):
            if path in declared:
                continue
            diffs.append(Diff(path, None, state, DiffClassification.UNEXPECTED))

        report = VerificationReport(plan_id=plan.id, diffs=diffs, summary=VerificationReport.summarize(diffs))
        logger.info("Verified plan %s: %s", plan.id, report.summary)
        log_plan_verified(plan.id, report.passed, report.summary)
        return report
