"""Workspace analysis: file discovery, structural facts, and snapshots.

The analyzer walks a workspace root, reads matching files through a bounded
thread pool, and returns a single :class:`WorkspaceAnalysis` snapshot. A
:class:`CancellationToken` is checked between file operations; a cancelled
scan raises :class:`OperationCancelled` and never yields a partial snapshot.
"""

from __future__ import annotations

import ast
import hashlib
import logging
import os
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .config import PlannerConfig
from .errors import AnalysisError, OperationCancelled
from .models import (
    CodePattern,
    FileInfo,
    FileType,
    ObservedState,
    PatternType,
    TaskDescription,
    WorkspaceAnalysis,
)
from .taskplan_logging import log_performance

logger = logging.getLogger("taskplan.analysis")

Patterns = Union[str, Sequence[str]]


class CancellationToken:
    """Cooperative cancellation signal shared between a caller and workers."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str = "operation") -> None:
        if self._event.is_set():
            raise OperationCancelled(f"{operation} was cancelled")


# ---------------------------------------------------------------------------
# Pattern matching
# ---------------------------------------------------------------------------

_BRACES = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` groups: ``*.{py,md}`` -> ``['*.py', '*.md']``."""
    match = _BRACES.search(pattern)
    if not match:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end():]
    expanded: List[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


def _normalize_patterns(patterns: Optional[Patterns]) -> List[str]:
    if not patterns:
        return []
    if isinstance(patterns, str):
        patterns = [patterns]
    expanded: List[str] = []
    for pattern in patterns:
        for item in expand_braces(pattern):
            expanded.append(item)
            # "**/" also matches at the workspace root.
            while item.startswith("**/"):
                item = item[3:]
                expanded.append(item)
    return expanded


def matches_any(relative_path: str, patterns: Iterable[str]) -> bool:
    return any(fnmatchcase(relative_path, pattern) for pattern in patterns)


def get_file_type(file_name: str) -> FileType:
    suffix = PurePosixPath(file_name).suffix.lower()
    if suffix == ".py":
        return FileType.PYTHON
    if suffix in (".ts", ".tsx"):
        return FileType.TYPESCRIPT
    if suffix in (".js", ".jsx", ".mjs", ".cjs"):
        return FileType.JAVASCRIPT
    if suffix == ".json":
        return FileType.JSON
    if suffix == ".md":
        return FileType.MARKDOWN
    return FileType.OTHER


# ---------------------------------------------------------------------------
# Structural facts
# ---------------------------------------------------------------------------

_JS_IMPORT = re.compile(r"""(?:import|export)\s[^'";]*?from\s+['"]([^'"]+)['"]""")
_JS_BARE_IMPORT = re.compile(r"""^\s*import\s+['"]([^'"]+)['"]""", re.MULTILINE)
_JS_REQUIRE = re.compile(r"""require\(\s*['"]([^'"]+)['"]\s*\)""")
_JS_EXPORT = re.compile(
    r"export\s+(?:default\s+)?(?:async\s+)?(?:function\*?|class|const|let|var|interface|type|enum)\s+([A-Za-z_$][\w$]*)"
)
_JS_FUNCTION = re.compile(r"(?:^|[\s;])(?:export\s+)?(?:default\s+)?(?:async\s+)?function\*?\s+([A-Za-z_$][\w$]*)")
_JS_CLASS = re.compile(r"(?:^|[\s;])(?:export\s+)?(?:default\s+)?class\s+([A-Za-z_$][\w$]*)")


def _python_structure(content: str, location: str) -> Tuple[List[str], List[str], List[CodePattern]]:
    try:
        tree = ast.parse(content)
    except (SyntaxError, ValueError):
        logger.debug("Skipping structure for unparsable Python file %s", location)
        return [], [], []

    imports: List[str] = []
    exports: List[str] = []
    declared_all: Optional[List[str]] = None
    patterns: List[CodePattern] = []

    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            imports.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            imports.append("." * node.level + (node.module or ""))

    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            patterns.append(CodePattern(PatternType.FUNCTION, node.name, location))
            if not node.name.startswith("_"):
                exports.append(node.name)
        elif isinstance(node, ast.ClassDef):
            patterns.append(CodePattern(PatternType.CLASS, node.name, location))
            if not node.name.startswith("_"):
                exports.append(node.name)
        elif isinstance(node, ast.Assign):
            for target in node.targets:
                if isinstance(target, ast.Name) and target.id == "__all__":
                    try:
                        value = ast.literal_eval(node.value)
                    except ValueError:
                        continue
                    if isinstance(value, (list, tuple)):
                        declared_all = [str(item) for item in value]

    return list(dict.fromkeys(imports)), declared_all if declared_all is not None else exports, patterns


def _script_structure(content: str, location: str, component_file: bool) -> Tuple[List[str], List[str], List[CodePattern]]:
    imports = _JS_IMPORT.findall(content) + _JS_BARE_IMPORT.findall(content) + _JS_REQUIRE.findall(content)
    exports = _JS_EXPORT.findall(content)
    patterns: List[CodePattern] = []
    for name in dict.fromkeys(_JS_FUNCTION.findall(content)):
        kind = PatternType.COMPONENT if component_file and name[:1].isupper() else PatternType.FUNCTION
        patterns.append(CodePattern(kind, name, location))
    for name in dict.fromkeys(_JS_CLASS.findall(content)):
        patterns.append(CodePattern(PatternType.CLASS, name, location))
    return list(dict.fromkeys(imports)), list(dict.fromkeys(exports)), patterns


def extract_structure(content: str, file_type: FileType, location: str) -> Tuple[List[str], List[str], List[CodePattern]]:
    """Return ``(imports, exports, patterns)`` for a source file."""
    if file_type is FileType.PYTHON:
        return _python_structure(content, location)
    if file_type in (FileType.TYPESCRIPT, FileType.JAVASCRIPT):
        return _script_structure(content, location, location.endswith((".jsx", ".tsx")))
    return [], [], []


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class WorkspaceAnalyzer:
    """Scan a workspace root into a :class:`WorkspaceAnalysis` snapshot."""

    def __init__(self, root: Path | str, config: Optional[PlannerConfig] = None):
        self.root = Path(root).expanduser().resolve()
        self.config = config or PlannerConfig()

    def _require_root(self) -> None:
        if not self.root.is_dir():
            raise AnalysisError(f"Workspace root does not exist: {self.root}")

    def relative_path(self, absolute_path: Path | str) -> str:
        """Workspace-relative POSIX path, without following symlinks."""
        return Path(absolute_path).relative_to(self.root).as_posix()

    def is_within_workspace(self, path: Path | str) -> bool:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        try:
            candidate.resolve().relative_to(self.root)
        except ValueError:
            return False
        return True

    def find_files(self, pattern: Patterns, exclude: Optional[Patterns] = None) -> List[str]:
        """Absolute paths of files matching ``pattern`` and not ``exclude``."""
        self._require_root()
        includes = _normalize_patterns(pattern)
        excludes = _normalize_patterns(exclude)

        found: List[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(dirpath).relative_to(self.root).as_posix()
            prefix = "" if rel_dir == "." else rel_dir + "/"
            dirnames[:] = sorted(d for d in dirnames if not matches_any(f"{prefix}{d}/", excludes))
            for name in sorted(filenames):
                rel = prefix + name
                if matches_any(rel, includes) and not matches_any(rel, excludes):
                    found.append(str(Path(dirpath) / name))
        return sorted(found)

    def read_file(self, path: Path | str) -> str:
        """Read a workspace file as text, refusing paths outside the workspace."""
        raw = str(path)
        if ".." in Path(raw).parts or "~" in raw or "\x00" in raw:
            raise AnalysisError("Invalid file path")
        if not self.is_within_workspace(raw):
            raise AnalysisError("File path must be within workspace")

        target = Path(raw) if Path(raw).is_absolute() else self.root / raw
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise AnalysisError(f"Failed to read file: {type(exc).__name__}") from exc

    def _probe(self, absolute_path: str, token: CancellationToken) -> Tuple[FileInfo, List[CodePattern]]:
        token.raise_if_cancelled("Workspace scan")
        relative = self.relative_path(absolute_path)
        file_type = get_file_type(relative)
        if not self.is_within_workspace(absolute_path):
            logger.warning("Skipping %s: it resolves outside the workspace", relative)
            return FileInfo(path=relative, type=file_type, error="outside workspace"), []
        try:
            data = Path(absolute_path).read_bytes()
        except OSError as exc:
            logger.warning("Failed to read %s: %s", relative, exc)
            return FileInfo(path=relative, type=file_type, error=f"unreadable ({type(exc).__name__})"), []

        imports, exports, patterns = extract_structure(
            data.decode("utf-8", errors="replace"), file_type, relative
        )
        info = FileInfo(
            path=relative,
            type=file_type,
            size=len(data),
            imports=imports,
            exports=exports,
            digest=hashlib.sha256(data).hexdigest(),
        )
        return info, patterns

    @log_performance("analyze_workspace")
    def analyze(self, cancel_token: Optional[CancellationToken] = None) -> WorkspaceAnalysis:
        """Scan the workspace. Either returns a full snapshot or raises."""
        token = cancel_token or CancellationToken()
        self._require_root()
        token.raise_if_cancelled("Workspace scan")

        paths = self.find_files(self.config.include_patterns, self.config.all_excludes)
        results: Dict[str, Tuple[FileInfo, List[CodePattern]]] = {}

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = [executor.submit(self._probe, path, token) for path in paths]
            try:
                for future in as_completed(futures):
                    info, patterns = future.result()
                    results[info.path] = (info, patterns)
                    token.raise_if_cancelled("Workspace scan")
            except OperationCancelled:
                for future in futures:
                    future.cancel()
                logger.info("Workspace scan cancelled after %d of %d files", len(results), len(paths))
                raise

        files: List[FileInfo] = []
        patterns: List[CodePattern] = []
        dependencies: Dict[str, List[str]] = {}
        for relative in sorted(results):
            info, file_patterns = results[relative]
            files.append(info)
            patterns.extend(file_patterns)
            if info.imports:
                dependencies[relative] = list(info.imports)

        logger.info("Analyzed %d files under %s", len(files), self.root)
        return WorkspaceAnalysis(
            root_path=str(self.root),
            files=files,
            dependencies=dependencies,
            patterns=patterns,
        )


# ---------------------------------------------------------------------------
# Relevance and change detection
# ---------------------------------------------------------------------------


def calculate_relevance_score(file: FileInfo, task: TaskDescription) -> int:
    """Score how strongly a file relates to the task scope."""
    score = 0
    file_path = file.path.lower()
    file_name = PurePosixPath(file_path).name
    imports = [item.lower() for item in file.imports]
    exports = [item.lower() for item in file.exports]

    for keyword in task.scope:
        keyword = keyword.lower()
        if keyword in file_name:
            score += 10
        if keyword in file_path:
            score += 5
        if any(keyword in item for item in imports):
            score += 3
        if any(keyword in item for item in exports):
            score += 3
    return score


def score_files(task: TaskDescription, analysis: WorkspaceAnalysis) -> List[Tuple[FileInfo, int]]:
    """Files with a positive score, highest first; ties keep path order."""
    scored = [(info, calculate_relevance_score(info, task)) for info in analysis.files if info.error is None]
    scored = [item for item in scored if item[1] > 0]
    scored.sort(key=lambda item: -item[1])
    return scored


def find_relevant_files(
    task: TaskDescription, analysis: WorkspaceAnalysis, limit: Optional[int] = None
) -> List[FileInfo]:
    """Files related to the task scope, most relevant first."""
    relevant = [info for info, _ in score_files(task, analysis)]
    return relevant if limit is None else relevant[:limit]


def detect_changes(baseline: WorkspaceAnalysis, current: WorkspaceAnalysis) -> Dict[str, ObservedState]:
    """Paths whose state differs between two snapshots.

    Files that could not be read in either snapshot are left out.
    """
    before = baseline.file_index()
    after = current.file_index()
    changes: Dict[str, ObservedState] = {}
    for path in sorted(set(before) | set(after)):
        old, new = before.get(path), after.get(path)
        if (old is not None and old.error) or (new is not None and new.error):
            continue
        if old is None:
            changes[path] = ObservedState.CREATED
        elif new is None:
            changes[path] = ObservedState.ABSENT
        elif old.digest != new.digest:
            changes[path] = ObservedState.MODIFIED
    return changes

