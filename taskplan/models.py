"""Data models for taskplan.

This module contains the core data structures used throughout the plan
pipeline: classified tasks, plans with their steps and file changes,
workspace analysis snapshots, and verification reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import StructuralError, TransitionError, ValidationError


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string with a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class TaskIntent(str, Enum):
    """Coarse category of a development task."""

    FEATURE = "feature"
    BUGFIX = "bugfix"
    REFACTOR = "refactor"
    DOCUMENTATION = "documentation"
    TEST = "test"


class PlanStatus(str, Enum):
    """Lifecycle of a plan. Statuses only ever advance."""

    DRAFT = "draft"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = (PlanStatus.DRAFT, PlanStatus.IN_PROGRESS, PlanStatus.COMPLETED)


class FileChangeType(str, Enum):
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"


class FileType(str, Enum):
    PYTHON = "python"
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    JSON = "json"
    MARKDOWN = "markdown"
    OTHER = "other"


class PatternType(str, Enum):
    COMPONENT = "component"
    FUNCTION = "function"
    CLASS = "class"
    MODULE = "module"


class ObservedState(str, Enum):
    """State of a file in the current workspace relative to the plan baseline."""

    ABSENT = "absent"
    CREATED = "created"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class DiffClassification(str, Enum):
    MATCH = "match"
    MISSING = "missing"
    UNEXPECTED = "unexpected"
    MISMATCHED = "mismatched"


def path_issue(path: str) -> Optional[str]:
    """Return why ``path`` is not a safe workspace-relative path, or None."""
    if not path or not path.strip():
        return "File path is required"
    if "\x00" in path:
        return f"File path contains a null byte: {path!r}"
    if path.startswith(("/", "\\")) or (len(path) > 1 and path[1] == ":"):
        return f"File path must be workspace-relative: {path}"
    if "~" in path:
        return f"File path must not reference a home directory: {path}"
    if ".." in path.replace("\\", "/").split("/"):
        return f"File path must not traverse directories: {path}"
    return None


# ---------------------------------------------------------------------------
# Task classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TaskDescription:
    """Classified task, created once per classification call."""

    title: str
    description: str
    intent: TaskIntent
    scope: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "title": self.title,
            "description": self.description,
            "intent": self.intent.value,
            "scope": list(self.scope),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskDescription":
        """Create from dictionary representation."""
        return cls(
            title=data["title"],
            description=data.get("description", data["title"]),
            intent=TaskIntent(data.get("intent", TaskIntent.FEATURE.value)),
            scope=tuple(data.get("scope", [])),
        )


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Step:
    """One unit of planned work."""

    id: str
    description: str
    reasoning: str
    dependencies: Tuple[str, ...] = ()
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "description": self.description,
            "reasoning": self.reasoning,
            "dependencies": list(self.dependencies),
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            description=data["description"],
            reasoning=data["reasoning"],
            dependencies=tuple(data.get("dependencies", [])),
            completed=bool(data.get("completed", False)),
        )


@dataclass(frozen=True, slots=True)
class FileChange:
    """A declared create/modify/delete action on a workspace file."""

    path: str
    type: FileChangeType
    description: str
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "path": self.path,
            "type": self.type.value,
            "description": self.description,
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileChange":
        """Create from dictionary representation."""
        return cls(
            path=data["path"],
            type=FileChangeType(data["type"]),
            description=data.get("description", ""),
            reasoning=data.get("reasoning", ""),
        )


@dataclass(slots=True)
class Plan:
    """Ordered steps and file changes representing a proposed implementation.

    ``steps`` is the execution order. ``baseline`` maps every declared path to
    the digest of the file when the plan was assembled (``None`` when the file
    did not exist), which is what verification compares against.
    """

    id: str
    title: str
    description: str
    steps: List[Step] = field(default_factory=list)
    files: List[FileChange] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    status: PlanStatus = PlanStatus.DRAFT
    intent: TaskIntent = TaskIntent.FEATURE
    scope: Tuple[str, ...] = ()
    baseline: Dict[str, Optional[str]] = field(default_factory=dict)
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "intent": self.intent.value,
            "scope": list(self.scope),
            "steps": [step.to_dict() for step in self.steps],
            "files": [change.to_dict() for change in self.files],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "status": self.status.value,
            "baseline": dict(self.baseline),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        """Create from dictionary representation."""
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description", data["title"]),
            steps=[Step.from_dict(item) for item in data.get("steps", [])],
            files=[FileChange.from_dict(item) for item in data.get("files", [])],
            created_at=data["created_at"],
            status=PlanStatus(data.get("status", PlanStatus.DRAFT.value)),
            intent=TaskIntent(data.get("intent", TaskIntent.FEATURE.value)),
            scope=tuple(data.get("scope", [])),
            baseline=dict(data.get("baseline", {})),
            updated_at=data.get("updated_at"),
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_step(self, step_id: str) -> Optional[Step]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_file_change(self, path: str) -> Optional[FileChange]:
        for change in self.files:
            if change.path == path:
                return change
        return None

    def ready_steps(self) -> List[Step]:
        """Incomplete steps whose dependencies are all complete, in plan order."""
        done = {step.id for step in self.steps if step.completed}
        return [
            step
            for step in self.steps
            if not step.completed and all(dep in done for dep in step.dependencies)
        ]

    def progress(self) -> Dict[str, int]:
        completed = sum(1 for step in self.steps if step.completed)
        return {"total": len(self.steps), "completed": completed, "remaining": len(self.steps) - completed}

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def advance_status(self, new_status: PlanStatus | str) -> None:
        """Move the plan forward. Backward and same-state moves are rejected."""
        try:
            target = PlanStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown plan status: {new_status}") from None

        if target.rank <= self.status.rank:
            raise TransitionError(
                f"Cannot move plan from '{self.status.value}' to '{target.value}'; status only advances"
            )
        self.status = target
        self.updated_at = utc_now()

    def set_step_completed(self, step_id: str, completed: bool = True) -> Step:
        """Toggle a step. Completing a step of a draft plan starts the plan."""
        if self.status is PlanStatus.COMPLETED:
            raise TransitionError("Plan is completed; its steps can no longer change")

        step = self.get_step(step_id)
        if step is None:
            raise StructuralError(f"Unknown step id '{step_id}'")

        step.completed = completed
        if completed and self.status is PlanStatus.DRAFT:
            self.status = PlanStatus.IN_PROGRESS
        self.updated_at = utc_now()
        return step

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> List[str]:
        """Validate plan structure and return any issues."""
        issues: List[str] = []

        if not self.id:
            issues.append("Plan ID is required")
        if not self.title:
            issues.append("Plan title is required")

        issues.extend(step_issues(self.steps))
        issues.extend(file_change_issues(self.files))

        seen: set[str] = set()
        for step in self.steps:
            for dep in step.dependencies:
                if dep == step.id:
                    issues.append(f"Step '{step.id}' depends on itself")
                elif dep not in seen and self.get_step(dep) is not None:
                    issues.append(f"Step '{step.id}' appears before its dependency '{dep}'")
            seen.add(step.id)

        return issues


def step_issues(steps: Iterable[Step]) -> List[str]:
    """Structural issues in a step collection, excluding cycles."""
    steps = list(steps)
    issues: List[str] = []
    ids = [step.id for step in steps]
    known = set(ids)

    seen: set[str] = set()
    for step_id in ids:
        if not step_id:
            issues.append("Step ID is required")
        elif step_id in seen:
            issues.append(f"Duplicate step id '{step_id}'")
        seen.add(step_id)

    for step in steps:
        if not step.reasoning or not step.reasoning.strip():
            issues.append(f"Step '{step.id}' has no reasoning")
        for dep in step.dependencies:
            if dep not in known:
                issues.append(f"Step '{step.id}' depends on unknown step '{dep}'")
    return issues


def file_change_issues(files: Iterable[FileChange]) -> List[str]:
    issues: List[str] = []
    seen: set[str] = set()
    for change in files:
        problem = path_issue(change.path)
        if problem:
            issues.append(problem)
        elif change.path in seen:
            issues.append(f"Duplicate file change for '{change.path}'")
        seen.add(change.path)
    return issues


# ---------------------------------------------------------------------------
# Workspace analysis snapshot
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class FileInfo:
    """Structural facts about one workspace file."""

    path: str
    type: FileType
    size: int = 0
    imports: List[str] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    digest: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "path": self.path,
            "type": self.type.value,
            "size": self.size,
            "imports": list(self.imports),
            "exports": list(self.exports),
            "digest": self.digest,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileInfo":
        """Create from dictionary representation."""
        return cls(
            path=data["path"],
            type=FileType(data.get("type", FileType.OTHER.value)),
            size=data.get("size", 0),
            imports=list(data.get("imports", [])),
            exports=list(data.get("exports", [])),
            digest=data.get("digest"),
            error=data.get("error"),
        )


@dataclass(frozen=True, slots=True)
class CodePattern:
    type: PatternType
    name: str
    location: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type.value, "name": self.name, "location": self.location}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodePattern":
        return cls(type=PatternType(data["type"]), name=data["name"], location=data["location"])


@dataclass(slots=True)
class WorkspaceAnalysis:
    """Snapshot of the workspace consumed by the assembler and the verifier."""

    root_path: str
    files: List[FileInfo] = field(default_factory=list)
    dependencies: Dict[str, List[str]] = field(default_factory=dict)
    patterns: List[CodePattern] = field(default_factory=list)
    captured_at: str = field(default_factory=utc_now)

    def get_file(self, path: str) -> Optional[FileInfo]:
        for info in self.files:
            if info.path == path:
                return info
        return None

    def file_index(self) -> Dict[str, FileInfo]:
        return {info.path: info for info in self.files}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "root_path": self.root_path,
            "files": [info.to_dict() for info in self.files],
            "dependencies": {path: list(imports) for path, imports in self.dependencies.items()},
            "patterns": [pattern.to_dict() for pattern in self.patterns],
            "captured_at": self.captured_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkspaceAnalysis":
        """Create from dictionary representation."""
        return cls(
            root_path=data["root_path"],
            files=[FileInfo.from_dict(item) for item in data.get("files", [])],
            dependencies={path: list(imports) for path, imports in data.get("dependencies", {}).items()},
            patterns=[CodePattern.from_dict(item) for item in data.get("patterns", [])],
            captured_at=data.get("captured_at", utc_now()),
        )


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Diff:
    """Comparison of one declared (or observed) change against the workspace.

    ``expected`` is None for changes observed but never declared.
    ``classification`` and ``observed`` are None when probing the file failed,
    in which case ``error`` holds a short description.
    """

    path: str
    expected: Optional[FileChange]
    observed: Optional[ObservedState]
    classification: Optional[DiffClassification]
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "path": self.path,
            "expected": self.expected.to_dict() if self.expected else None,
            "observed": self.observed.value if self.observed else None,
            "classification": self.classification.value if self.classification else None,
            "error": self.error,
        }


@dataclass(slots=True)
class VerificationReport:
    """Result of comparing a plan's declared file changes with the workspace."""

    plan_id: str
    diffs: List[Diff] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    verified_at: str = field(default_factory=utc_now)

    @staticmethod
    def summarize(diffs: Iterable[Diff]) -> Dict[str, int]:
        counts = {classification.value: 0 for classification in DiffClassification}
        counts["error"] = 0
        for diff in diffs:
            if diff.classification is None:
                counts["error"] += 1
            else:
                counts[diff.classification.value] += 1
        return counts

    @property
    def passed(self) -> bool:
        """True when every declared change matched and nothing else changed."""
        return all(diff.classification is DiffClassification.MATCH for diff in self.diffs)

    def diffs_by(self, classification: DiffClassification) -> List[Diff]:
        return [diff for diff in self.diffs if diff.classification is classification]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "plan_id": self.plan_id,
            "passed": self.passed,
            "summary": dict(self.summary),
            "diffs": [diff.to_dict() for diff in self.diffs],
            "verified_at": self.verified_at,
        }
