"""Default candidate strategy: intent templates grounded in the workspace snapshot.

A strategy is any callable ``(task, analysis) -> (steps, files)``. The
assembler validates and orders whatever a strategy returns, so alternative
heuristics can be swapped in without touching plan construction.
"""

from __future__ import annotations

from collections import Counter
from pathlib import PurePosixPath
from typing import Callable, List, Optional, Sequence, Tuple

from .analysis import find_relevant_files
from .models import FileChange, FileChangeType, FileInfo, FileType, Step, TaskDescription, TaskIntent, WorkspaceAnalysis

Candidates = Tuple[List[Step], List[FileChange]]
CandidateStrategy = Callable[[TaskDescription, WorkspaceAnalysis], Candidates]

DEFAULT_RELEVANT_LIMIT = 5

_SOURCE_TYPES = (FileType.PYTHON, FileType.TYPESCRIPT, FileType.JAVASCRIPT)
_EXTENSIONS = {FileType.PYTHON: ".py", FileType.TYPESCRIPT: ".ts", FileType.JAVASCRIPT: ".js"}


def dominant_language(analysis: WorkspaceAnalysis) -> FileType:
    """Most common source language in the snapshot; Python for empty workspaces."""
    counts = Counter(info.type for info in analysis.files if info.type in _SOURCE_TYPES)
    if not counts:
        return FileType.PYTHON
    # Ties resolve in _SOURCE_TYPES order.
    return max(_SOURCE_TYPES, key=lambda kind: counts.get(kind, 0))


def scope_slug(task: TaskDescription, separator: str = "_") -> str:
    words = [word for word in task.scope[:3] if word.isascii() and word.isalnum()]
    return separator.join(words) or "task"


def _summary(task: TaskDescription, limit: int = 80) -> str:
    return task.title if len(task.title) <= limit else task.title[: limit - 3].rstrip() + "..."


def _is_test_path(path: str) -> bool:
    parts = PurePosixPath(path).parts
    name = parts[-1] if parts else ""
    return (
        any(part in ("tests", "test", "__tests__") for part in parts[:-1])
        or name.startswith("test_")
        or ".test." in name
        or ".spec." in name
    )


def _source_dir(analysis: WorkspaceAnalysis, relevant: Sequence[FileInfo], language: FileType) -> str:
    for info in relevant:
        if info.type is language and not _is_test_path(info.path):
            return PurePosixPath(info.path).parent.as_posix()
    if any(info.path.startswith("src/") for info in analysis.files):
        return "src"
    return "."


def _join(directory: str, name: str) -> str:
    return name if directory in ("", ".") else f"{directory}/{name}"


def _test_path(analysis: WorkspaceAnalysis, language: FileType, task: TaskDescription) -> str:
    if language is FileType.PYTHON:
        return f"tests/test_{scope_slug(task)}.py"
    directory = "tests" if any(info.path.startswith("tests/") for info in analysis.files) else "test"
    return f"{directory}/{scope_slug(task, '-')}.test{_EXTENSIONS[language]}"


def _module_path(analysis: WorkspaceAnalysis, relevant: Sequence[FileInfo], language: FileType, task: TaskDescription) -> str:
    separator = "_" if language is FileType.PYTHON else "-"
    return _join(_source_dir(analysis, relevant, language), scope_slug(task, separator) + _EXTENSIONS[language])


def generate_candidates(
    task: TaskDescription,
    analysis: WorkspaceAnalysis,
    relevant_limit: int = DEFAULT_RELEVANT_LIMIT,
) -> Candidates:
    """Build unordered candidate steps and file changes for ``task``."""
    relevant = [info for info in find_relevant_files(task, analysis, relevant_limit) if info.error is None]
    language = dominant_language(analysis)
    known = analysis.file_index()
    scope_text = ", ".join(task.scope[:5]) or "the affected area"
    summary = _summary(task)
    relevant_text = ", ".join(info.path for info in relevant) or "the existing code base"

    steps: List[Step] = []
    files: List[FileChange] = []
    counter = 1

    def add_step(description: str, reasoning: str, *dependencies: str) -> str:
        nonlocal counter
        step_id = f"step-{counter}"
        steps.append(Step(id=step_id, description=description, reasoning=reasoning, dependencies=tuple(dependencies)))
        counter += 1
        return step_id

    def add_file(path: str, description: str, reasoning: str, change_type: Optional[FileChangeType] = None) -> None:
        if any(change.path == path for change in files):
            return
        if change_type is None:
            change_type = FileChangeType.MODIFY if path in known else FileChangeType.CREATE
        files.append(FileChange(path=path, type=change_type, description=description, reasoning=reasoning))

    def modify_relevant(description: str) -> None:
        for info in relevant:
            add_file(
                info.path,
                description,
                f"{info.path} matches the task scope ({scope_text}).",
            )

    readme = "README.md" if "README.md" in known else None
    test_path = _test_path(analysis, language, task)

    review = add_step(
        f"Review existing code related to {scope_text}",
        f"Understanding {relevant_text} first keeps the change consistent with current structure.",
    )

    if task.intent is TaskIntent.FEATURE:
        design = add_step(
            f"Design the interface and data flow for: {summary}",
            "Agreeing on the shape of the feature before coding limits rework.",
            review,
        )
        implement = add_step(
            f"Implement {summary}",
            "The core behaviour requested by the task.",
            design,
        )
        integrate = add_step(
            f"Integrate the new functionality with {relevant_text}",
            "New code is only useful once existing entry points reach it.",
            implement,
        )
        tests = add_step(
            f"Write tests covering {scope_text}",
            "Tests pin the new behaviour and guard against regressions.",
            implement,
        )
        add_step(
            f"Document the {scope_slug(task, ' ')} feature",
            "Users and maintainers need to know the feature exists and how to use it.",
            integrate,
            tests,
        )
        add_file(
            _module_path(analysis, relevant, language, task),
            f"Core implementation for {summary}",
            "Keeps the new functionality in its own module.",
        )
        modify_relevant("Wire the new functionality into this file")
        add_file(test_path, f"Tests for {scope_text}", "Covers the new behaviour.")
        if readme:
            add_file(readme, "Describe the new feature", "The README is the entry point for users.")

    elif task.intent is TaskIntent.BUGFIX:
        reproduce = add_step(
            f"Reproduce the problem: {summary}",
            "A reliable reproduction confirms the defect and its trigger.",
            review,
        )
        fix = add_step(
            f"Fix the root cause in {relevant_text}",
            "Addressing the cause rather than the symptom prevents recurrence.",
            reproduce,
        )
        add_step(
            "Add a regression test for the fixed behaviour",
            "The test fails before the fix and passes after it.",
            fix,
        )
        modify_relevant("Correct the faulty behaviour")
        add_file(test_path, "Regression test for the fix", "Prevents the defect from returning.")

    elif task.intent is TaskIntent.REFACTOR:
        characterize = add_step(
            f"Capture current behaviour of {relevant_text} with tests",
            "Characterization tests make behaviour changes visible during restructuring.",
            review,
        )
        restructure = add_step(
            f"Restructure code for: {summary}",
            "The structural improvement requested by the task.",
            characterize,
        )
        add_step(
            "Remove dead code and tidy names left by the restructuring",
            "Leftovers from the old structure obscure the new one.",
            restructure,
        )
        modify_relevant("Restructure this file")
        add_file(test_path, "Characterization tests", "Locks in behaviour before restructuring.")

    elif task.intent is TaskIntent.DOCUMENTATION:
        outline = add_step(
            f"Outline documentation for {scope_text}",
            "An outline keeps the documentation focused on what readers need.",
            review,
        )
        add_step(
            f"Write the documentation: {summary}",
            "The content requested by the task.",
            outline,
        )
        target = readme or f"docs/{scope_slug(task, '-')}.md"
        add_file(target, f"Documentation for {scope_text}", "Where readers look for project documentation.")

    else:
        gaps = add_step(
            f"Identify untested behaviour in {relevant_text}",
            "Knowing the gaps directs effort to the riskiest code.",
            review,
        )
        write = add_step(
            f"Write tests: {summary}",
            "The coverage requested by the task.",
            gaps,
        )
        add_step(
            "Measure coverage and close remaining gaps",
            "Coverage numbers confirm the new tests exercise the intended code.",
            write,
        )
        add_file(test_path, f"Tests for {scope_text}", "Holds the new test cases.")

    return steps, files
