"""JSON persistence for plans, their baselines, and the current-plan pointer.

Layout under the workspace root::

    <storage dir>/plans/<plan id>.json
    <storage dir>/plans/<plan id>.baseline.json
    <storage dir>/state/current.json
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import DEFAULT_STORAGE_DIR
from .errors import PlanNotFoundError, StructuralError, ValidationError
from .models import Plan, WorkspaceAnalysis
from .taskplan_logging import log_performance

logger = logging.getLogger("taskplan.store")

_PLAN_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp = path.with_name(path.name + ".tmp")
    temp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    os.replace(temp, path)


class PlanStore:
    """Store plans for one workspace root."""

    def __init__(self, root: Path | str, storage_dir: str = DEFAULT_STORAGE_DIR):
        self.root = Path(root).resolve()
        self.base_dir = self.root / storage_dir
        self.plans_dir = self.base_dir / "plans"
        self.state_dir = self.base_dir / "state"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _plan_path(self, plan_id: str) -> Path:
        if not isinstance(plan_id, str) or not _PLAN_ID.match(plan_id):
            raise ValidationError(f"Invalid plan id: {plan_id!r}")
        return self.plans_dir / f"{plan_id}.json"

    def _baseline_path(self, plan_id: str) -> Path:
        return self._plan_path(plan_id).with_name(f"{plan_id}.baseline.json")

    @property
    def current_path(self) -> Path:
        return self.state_dir / "current.json"

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    def exists(self, plan_id: str) -> bool:
        return self._plan_path(plan_id).exists()

    @log_performance("save_plan")
    def save(self, plan: Plan, *, make_current: bool = False) -> Path:
        path = self._plan_path(plan.id)
        _write_json(path, plan.to_dict())
        if make_current:
            self.set_current(plan.id)
        logger.debug("Saved plan %s to %s", plan.id, path)
        return path

    def load(self, plan_id: str) -> Plan:
        path = self._plan_path(plan_id)
        if not path.exists():
            raise PlanNotFoundError(f"Plan '{plan_id}' not found")
        try:
            return Plan.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (KeyError, ValueError, TypeError) as exc:
            raise StructuralError(f"Stored plan '{plan_id}' is corrupt") from exc

    def list_plans(self) -> List[Dict[str, Any]]:
        """Summaries of every stored plan, oldest first."""
        summaries: List[Dict[str, Any]] = []
        if not self.plans_dir.exists():
            return summaries

        for path in sorted(self.plans_dir.glob("*.json")):
            if path.name.endswith(".baseline.json"):
                continue
            try:
                plan = self.load(path.stem)
            except (StructuralError, ValidationError) as exc:
                logger.warning("Skipping unreadable plan file %s: %s", path.name, exc)
                continue
            summaries.append(
                {
                    "plan_id": plan.id,
                    "title": plan.title,
                    "intent": plan.intent.value,
                    "status": plan.status.value,
                    "created_at": plan.created_at,
                    "progress": plan.progress(),
                }
            )
        summaries.sort(key=lambda item: (item["created_at"], item["plan_id"]))
        return summaries

    # ------------------------------------------------------------------
    # Current plan pointer
    # ------------------------------------------------------------------

    def set_current(self, plan_id: str) -> None:
        self._plan_path(plan_id)
        _write_json(self.current_path, {"plan_id": plan_id})

    def current_plan_id(self) -> Optional[str]:
        if not self.current_path.exists():
            return None
        try:
            data = json.loads(self.current_path.read_text(encoding="utf-8"))
        except ValueError:
            logger.warning("Current plan pointer is corrupt: %s", self.current_path)
            return None
        plan_id = data.get("plan_id") if isinstance(data, dict) else None
        return plan_id if isinstance(plan_id, str) else None

    def resolve(self, plan_id: Optional[str] = None) -> Plan:
        """Load ``plan_id``, or the current plan when it is omitted."""
        target = plan_id or self.current_plan_id()
        if not target:
            raise PlanNotFoundError("No current plan. Generate one with generate_plan first.")
        return self.load(target)

    # ------------------------------------------------------------------
    # Baselines
    # ------------------------------------------------------------------

    def save_baseline(self, plan_id: str, analysis: WorkspaceAnalysis) -> Path:
        path = self._baseline_path(plan_id)
        _write_json(path, analysis.to_dict())
        return path

    def load_baseline(self, plan_id: str) -> Optional[WorkspaceAnalysis]:
        path = self._baseline_path(plan_id)
        if not path.exists():
            return None
        try:
            return WorkspaceAnalysis.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (KeyError, ValueError, TypeError) as exc:
            raise StructuralError(f"Stored baseline for plan '{plan_id}' is corrupt") from exc
