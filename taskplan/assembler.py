"""Plan assembly: validate candidate steps, order them, and stamp the plan."""

from __future__ import annotations

import heapq
import logging
import uuid
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from .errors import AnalysisError, CycleError, StructuralError
from .models import (
    FileChange,
    Plan,
    PlanStatus,
    Step,
    TaskDescription,
    WorkspaceAnalysis,
    file_change_issues,
    step_issues,
    utc_now,
)
from .strategy import CandidateStrategy, generate_candidates
from .taskplan_logging import log_operation, log_performance

logger = logging.getLogger("taskplan.assembler")


def new_plan_id() -> str:
    return f"plan-{uuid.uuid4().hex}"


def validate_candidates(steps: Iterable[Step], files: Iterable[FileChange]) -> None:
    """Raise StructuralError listing every structural problem found."""
    issues = step_issues(steps) + file_change_issues(files)
    if issues:
        raise StructuralError("Invalid plan structure: " + "; ".join(issues))


def _find_cycle(steps: Sequence[Step], remaining: Iterable[str]) -> List[str]:
    """Return the step ids of one dependency cycle among ``remaining``."""
    candidates = set(remaining)
    deps = {step.id: [dep for dep in step.dependencies if dep in candidates] for step in steps if step.id in candidates}
    visited: set[str] = set()

    for step in steps:
        if step.id not in candidates or step.id in visited:
            continue
        # Iterative DFS; each frame is a node and an iterator over its dependencies.
        path: List[str] = [step.id]
        on_path: set[str] = {step.id}
        stack: List[Iterator[str]] = [iter(deps[step.id])]
        visited.add(step.id)
        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                stack.pop()
                on_path.discard(path.pop())
            elif dep in on_path:
                return path[path.index(dep):]
            elif dep not in visited:
                visited.add(dep)
                path.append(dep)
                on_path.add(dep)
                stack.append(iter(deps.get(dep, [])))
    return sorted(candidates)


def topological_order(steps: Sequence[Step]) -> List[Step]:
    """Order steps so every step follows its dependencies.

    Kahn's algorithm with ties broken by input position, so identical input
    always yields the identical order. Raises CycleError when the
    dependency relation is not acyclic; no step is ever dropped.
    """
    position: Dict[str, int] = {step.id: index for index, step in enumerate(steps)}
    pending: Dict[str, int] = {}
    dependents: Dict[str, List[str]] = {step.id: [] for step in steps}

    for step in steps:
        unique_deps = set(step.dependencies)
        pending[step.id] = len(unique_deps)
        for dep in unique_deps:
            if dep not in position:
                raise StructuralError(f"Step '{step.id}' depends on unknown step '{dep}'")
            dependents[dep].append(step.id)

    ready = [position[step_id] for step_id, count in pending.items() if count == 0]
    heapq.heapify(ready)

    ordered: List[Step] = []
    while ready:
        step = steps[heapq.heappop(ready)]
        ordered.append(step)
        for dependent in dependents[step.id]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, position[dependent])

    if len(ordered) != len(steps):
        placed = {step.id for step in ordered}
        raise CycleError(_find_cycle(steps, (step.id for step in steps if step.id not in placed)))
    return ordered


class PlanAssembler:
    """Turn a classified task plus a workspace snapshot into a draft plan."""

    def __init__(
        self,
        strategy: CandidateStrategy = generate_candidates,
        clock: Optional[Callable[[], str]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ):
        self.strategy = strategy
        self.clock = clock or utc_now
        self.id_factory = id_factory or new_plan_id

    @log_performance("assemble_plan")
    def assemble(self, task: TaskDescription, analysis: WorkspaceAnalysis) -> Plan:
        if not isinstance(analysis, WorkspaceAnalysis):
            raise AnalysisError("Workspace analysis is unavailable")

        with log_operation("assemble_plan", intent=task.intent.value, scope_size=len(task.scope)):
            steps, files = self.strategy(task, analysis)
            steps, files = list(steps), list(files)
            validate_candidates(steps, files)
            ordered = topological_order(steps)

            baseline: Dict[str, Optional[str]] = {}
            for change in files:
                info = analysis.get_file(change.path)
                baseline[change.path] = info.digest if info is not None else None

            plan = Plan(
                id=self.id_factory(),
                title=task.title,
                description=task.description,
                steps=[
                    Step(
                        id=step.id,
                        description=step.description,
                        reasoning=step.reasoning,
                        dependencies=tuple(step.dependencies),
                    )
                    for step in ordered
                ],
                files=files,
                created_at=self.clock(),
                status=PlanStatus.DRAFT,
                intent=task.intent,
                scope=tuple(task.scope),
                baseline=baseline,
            )

        logger.info("Assembled plan %s with %d steps and %d file changes", plan.id, len(plan.steps), len(plan.files))
        return plan
