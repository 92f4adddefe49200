"""Runtime configuration for taskplan, read from ``TASKPLAN_*`` environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

DEFAULT_STORAGE_DIR = ".taskplan"

DEFAULT_INCLUDE_PATTERNS: Tuple[str, ...] = ("**/*.{py,ts,tsx,js,jsx,json,md}",)

DEFAULT_EXCLUDE_PATTERNS: Tuple[str, ...] = (
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
    "**/build/**",
    "**/out/**",
    "**/__pycache__/**",
    "**/.venv/**",
    "**/venv/**",
)


@dataclass(slots=True)
class PlannerConfig:
    """Settings shared by the analyzer, classifier, store and workflow."""

    storage_dir: str = DEFAULT_STORAGE_DIR
    max_description_length: int = 10_000
    max_workers: int = 8
    max_relevant_files: int = 5
    include_patterns: Tuple[str, ...] = DEFAULT_INCLUDE_PATTERNS
    exclude_patterns: Tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.max_description_length < 1:
            raise ValueError("max_description_length must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be positive")
        if self.max_relevant_files < 1:
            raise ValueError("max_relevant_files must be positive")

    @property
    def all_excludes(self) -> Tuple[str, ...]:
        """Exclude patterns including the plan storage directory itself."""
        return self.exclude_patterns + (f"**/{self.storage_dir}/**",)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PlannerConfig":
        """Build a config from ``TASKPLAN_*`` environment variables."""
        env = os.environ if environ is None else environ
        log_file = env.get("TASKPLAN_LOG_FILE")
        return cls(
            storage_dir=env.get("TASKPLAN_STORAGE_DIR") or DEFAULT_STORAGE_DIR,
            max_description_length=_int_setting(env, "TASKPLAN_MAX_DESCRIPTION_LENGTH", 10_000),
            max_workers=_int_setting(env, "TASKPLAN_MAX_WORKERS", 8),
            max_relevant_files=_int_setting(env, "TASKPLAN_MAX_RELEVANT_FILES", 5),
            log_level=(env.get("TASKPLAN_LOG_LEVEL") or "INFO").upper(),
            log_file=Path(log_file).expanduser() if log_file else None,
        )


def _int_setting(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got '{raw}'.") from None
