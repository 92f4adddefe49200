"""MCP server exposing the taskplan plan pipeline as tools."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from taskplan.config import DEFAULT_STORAGE_DIR, PlannerConfig
from taskplan.taskplan_logging import setup_logging
from taskplan.workflow import PlanWorkflow

mcp = FastMCP("taskplan")


PROJECT_ROOT_ENV = "TASKPLAN_PROJECT_ROOT"
SERVER_ROOT = Path(__file__).resolve().parent

_WORKFLOWS: Dict[Path, PlanWorkflow] = {}
_WORKFLOWS_LOCK = threading.Lock()


def _marker_directories() -> List[str]:
    preferred = os.getenv("TASKPLAN_STORAGE_DIR")
    markers = [preferred] if preferred else []
    if DEFAULT_STORAGE_DIR not in markers:
        markers.append(DEFAULT_STORAGE_DIR)
    return markers


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd, *cwd.parents, SERVER_ROOT, *SERVER_ROOT.parents]
    return list(dict.fromkeys(bases))


def _locate_workspace_root() -> Optional[Path]:
    for base in _candidate_bases():
        for marker in _marker_directories():
            if (base / marker).is_dir():
                return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.is_dir():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(PROJECT_ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.is_dir():
            raise ValueError(
                f"Environment variable {PROJECT_ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        f"or set the {PROJECT_ROOT_ENV} environment variable."
    )


def _workflow(root: Optional[str]) -> PlanWorkflow:
    resolved = _resolve_root(root)
    with _WORKFLOWS_LOCK:
        workflow = _WORKFLOWS.get(resolved)
        if workflow is None:
            workflow = PlanWorkflow(resolved, PlannerConfig.from_env())
            _WORKFLOWS[resolved] = workflow
        return workflow


def _run(root: Optional[str], action: Callable[[PlanWorkflow], Dict[str, Any]]) -> Dict[str, Any]:
    try:
        workflow = _workflow(root)
    except ValueError as e:
        return {
            "error": str(e),
            "suggestion": f"Pass 'root' or set {PROJECT_ROOT_ENV} to the project directory.",
            "message": f"Error: {e}",
        }
    return action(workflow)


@mcp.tool()
def generate_plan(description: str, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 1: Turn a free-text task description into an ordered implementation plan.
    Classifies the task, analyzes the workspace, and stores the plan as the current plan."""
    return _run(root, lambda workflow: workflow.generate_plan(description))


@mcp.tool()
def show_plan(plan_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Show a stored plan. Defaults to the current plan."""
    return _run(root, lambda workflow: workflow.show_plan(plan_id))


@mcp.tool()
def list_plans(root: Optional[str] = None) -> Dict[str, Any]:
    """Enumerate plans generated in the workspace."""
    return _run(root, lambda workflow: workflow.list_plans())


@mcp.tool()
def complete_step(
    step_id: str,
    completed: bool = True,
    plan_id: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """STEP 2: Mark a plan step complete (or incomplete) as implementation proceeds."""
    return _run(root, lambda workflow: workflow.complete_step(step_id, completed, plan_id))


@mcp.tool()
def advance_plan_status(status: str, plan_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Move a plan forward to 'in-progress' or 'completed'. Status never moves backwards."""
    return _run(root, lambda workflow: workflow.advance_status(status, plan_id))


@mcp.tool()
def verify_plan(plan_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """STEP 3: Compare the plan's declared file changes with the workspace and report differences."""
    return _run(root, lambda workflow: workflow.verify_plan(plan_id))


@mcp.tool()
def post_message(message: Dict[str, Any], plan_id: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Deliver a UI message (stepCompleted, planUpdated or requestData) to the plan workflow."""
    return _run(root, lambda workflow: workflow.handle_message(message, plan_id))


@mcp.resource("taskplan://plans")
def resource_plans() -> str:
    """Resource view listing generated plans for discovery."""
    try:
        workflow = _workflow(None)
    except ValueError:
        return f"No project root detected. Launch tools with a 'root' argument or set {PROJECT_ROOT_ENV}."

    plans = workflow.store.list_plans()
    if not plans:
        return "No plans have been generated yet."

    current = workflow.store.current_plan_id()
    lines = ["taskplan Plans"]
    for plan in plans:
        marker = " (current)" if plan["plan_id"] == current else ""
        progress = plan["progress"]
        lines.append("")
        lines.append(f"- {plan['plan_id']}{marker}: {plan['title']}")
        lines.append(f"  Status: {plan['status']} ({progress['completed']}/{progress['total']} steps)")
    return "\n".join(lines)


@mcp.tool()
def get_workflow_guide() -> Dict[str, Any]:
    """Get guidance on the recommended plan workflow."""
    return {
        "workflow_overview": "Plan, implement, and verify a development task",
        "steps": [
            {
                "step": 1,
                "tool": "generate_plan",
                "description": "Describe the task in plain text to produce an ordered plan",
                "purpose": "Classify intent, extract scope, and derive steps and file changes",
            },
            {
                "step": 2,
                "tools": ["show_plan", "complete_step", "advance_plan_status"],
                "description": "Work through ready steps and record progress",
                "purpose": "Keep the stored plan in sync with the implementation",
            },
            {
                "step": 3,
                "tool": "verify_plan",
                "description": "Check the workspace against the declared file changes",
                "purpose": "Find missing, mismatched, and unexpected changes",
            },
        ],
        "tips": [
            "Steps are listed in dependency order; ready_steps shows what can start now",
            "Plan status only moves forward: draft, in-progress, completed",
            "Verification compares against the workspace as it was when the plan was generated",
            "Use list_plans to find older plans by id",
        ],
    }


def run() -> None:
    config = PlannerConfig.from_env()
    setup_logging(config.log_level, config.log_file)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run()
