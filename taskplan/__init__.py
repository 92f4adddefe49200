"""taskplan - turn task descriptions into verifiable implementation plans."""

from .analysis import CancellationToken, WorkspaceAnalyzer
from .assembler import PlanAssembler
from .classifier import TaskClassifier
from .config import PlannerConfig
from .errors import (
    AnalysisError,
    ComparisonError,
    CycleError,
    OperationCancelled,
    PlanError,
    PlanNotFoundError,
    StructuralError,
    TransitionError,
    ValidationError,
)
from .models import FileChange, Plan, PlanStatus, Step, TaskDescription, VerificationReport, WorkspaceAnalysis
from .verifier import PlanVerifier
from .workflow import PlanWorkflow

__all__ = [
    "AnalysisError",
    "CancellationToken",
    "ComparisonError",
    "CycleError",
    "FileChange",
    "OperationCancelled",
    "Plan",
    "PlanAssembler",
    "PlanError",
    "PlanNotFoundError",
    "PlanStatus",
    "PlanVerifier",
    "PlanWorkflow",
    "PlannerConfig",
    "Step",
    "StructuralError",
    "TaskClassifier",
    "TaskDescription",
    "TransitionError",
    "ValidationError",
    "VerificationReport",
    "WorkspaceAnalysis",
    "WorkspaceAnalyzer",
]
