"""Unit tests for workspace analysis."""

import hashlib
from pathlib import Path

import pytest

from taskplan.analysis import (
    CancellationToken,
    WorkspaceAnalyzer,
    calculate_relevance_score,
    detect_changes,
    expand_braces,
    extract_structure,
    find_relevant_files,
    get_file_type,
)
from taskplan.errors import AnalysisError, OperationCancelled
from taskplan.models import FileInfo, FileType, ObservedState, PatternType, TaskDescription, TaskIntent


def relative(paths, root):
    return sorted(Path(path).relative_to(root).as_posix() for path in paths)


class TestPatterns:
    def test_expand_braces(self):
        assert expand_braces("**/*.{py,md}") == ["**/*.py", "**/*.md"]
        assert expand_braces("{a,b}/{c,d}.txt") == ["a/c.txt", "a/d.txt", "b/c.txt", "b/d.txt"]
        assert expand_braces("plain.txt") == ["plain.txt"]

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("a.py", FileType.PYTHON),
            ("a.tsx", FileType.TYPESCRIPT),
            ("a.mjs", FileType.JAVASCRIPT),
            ("package.json", FileType.JSON),
            ("README.MD", FileType.MARKDOWN),
            ("Makefile", FileType.OTHER),
        ],
    )
    def test_get_file_type(self, name, expected):
        assert get_file_type(name) is expected


class TestFindFiles:
    """Test cases for WorkspaceAnalyzer.find_files."""

    def test_returns_absolute_matching_paths(self, project, config):
        found = WorkspaceAnalyzer(project, config).find_files("**/*.py")

        assert all(Path(path).is_absolute() for path in found)
        assert relative(found, project.resolve()) == [
            "demo/__init__.py",
            "demo/api.py",
            "demo/auth.py",
            "tests/test_api.py",
        ]

    def test_brace_pattern_matches_root_files(self, project, config):
        found = WorkspaceAnalyzer(project, config).find_files("**/*.{md,js}")
        assert relative(found, project.resolve()) == ["README.md", "node_modules/pkg/index.js"]

    def test_exclude_pattern(self, project, config):
        found = WorkspaceAnalyzer(project, config).find_files("**/*.{md,js}", exclude="**/node_modules/**")
        assert relative(found, project.resolve()) == ["README.md"]

    def test_missing_root(self, tmp_path, config):
        with pytest.raises(AnalysisError, match="does not exist"):
            WorkspaceAnalyzer(tmp_path / "missing", config).find_files("**/*")


class TestReadFile:
    """Test cases for WorkspaceAnalyzer.read_file."""

    def test_reads_relative_and_absolute_paths(self, project, config):
        analyzer = WorkspaceAnalyzer(project, config)

        assert analyzer.read_file("README.md").startswith("# Demo")
        assert analyzer.read_file(str(project / "demo" / "api.py")).startswith("from demo.auth")

    @pytest.mark.parametrize("path", ["../outside.txt", "~/notes.txt", "demo/\x00api.py"])
    def test_rejects_unsafe_paths(self, project, config, path):
        with pytest.raises(AnalysisError, match="Invalid file path"):
            WorkspaceAnalyzer(project, config).read_file(path)

    def test_rejects_paths_outside_workspace(self, project, tmp_path_factory, config):
        outside = tmp_path_factory.mktemp("elsewhere") / "secret.txt"
        outside.write_text("secret", encoding="utf-8")

        with pytest.raises(AnalysisError, match="within workspace"):
            WorkspaceAnalyzer(project, config).read_file(str(outside))

    def test_missing_file(self, project, config):
        with pytest.raises(AnalysisError, match="Failed to read file"):
            WorkspaceAnalyzer(project, config).read_file("nope.py")


class TestAnalyze:
    """Test cases for WorkspaceAnalyzer.analyze."""

    def test_snapshot_contents(self, project, config):
        (project / ".taskplan").mkdir()
        (project / ".taskplan" / "plan.json").write_text("{}", encoding="utf-8")

        analysis = WorkspaceAnalyzer(project, config).analyze()

        assert [info.path for info in analysis.files] == [
            "README.md",
            "demo/__init__.py",
            "demo/api.py",
            "demo/auth.py",
            "tests/test_api.py",
        ]
        auth = analysis.get_file("demo/auth.py")
        content = (project / "demo" / "auth.py").read_bytes()
        assert auth.digest == hashlib.sha256(content).hexdigest()
        assert auth.size == len(content)
        assert auth.imports == ["hashlib"]
        assert auth.exports == ["login", "Session"]
        assert analysis.dependencies["demo/api.py"] == ["demo.auth"]
        assert {(p.type, p.name) for p in analysis.patterns if p.location == "demo/auth.py"} == {
            (PatternType.FUNCTION, "login"),
            (PatternType.CLASS, "Session"),
        }

    def test_cancelled_token_aborts_scan(self, project, config):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelled):
            WorkspaceAnalyzer(project, config).analyze(token)

    def test_missing_root(self, tmp_path, config):
        with pytest.raises(AnalysisError):
            WorkspaceAnalyzer(tmp_path / "missing", config).analyze()

    def test_symlink_leaving_workspace_is_a_file_error(self, project, tmp_path_factory, config):
        target = tmp_path_factory.mktemp("shared") / "shared.py"
        target.write_text("def helper():\n    pass\n", encoding="utf-8")
        (project / "demo" / "shared.py").symlink_to(target)

        analysis = WorkspaceAnalyzer(project, config).analyze()

        shared = analysis.get_file("demo/shared.py")
        assert shared.error == "outside workspace"
        assert shared.digest is None
        assert analysis.get_file("demo/auth.py").error is None
        assert not any(pattern.name == "helper" for pattern in analysis.patterns)


class TestExtractStructure:
    def test_typescript(self):
        content = (
            "import { a } from './a';\n"
            "import './styles.css';\n"
            "const lodash = require(\"lodash\");\n"
            "export function login() {}\n"
            "export class Session {}\n"
            "export const TOKEN = 1;\n"
        )
        imports, exports, patterns = extract_structure(content, FileType.TYPESCRIPT, "src/auth.ts")

        assert set(imports) == {"./a", "./styles.css", "lodash"}
        assert exports == ["login", "Session", "TOKEN"]
        assert {(p.type, p.name) for p in patterns} == {
            (PatternType.FUNCTION, "login"),
            (PatternType.CLASS, "Session"),
        }

    def test_component_detection_in_tsx(self):
        _, _, patterns = extract_structure("export function LoginForm() {}\n", FileType.TYPESCRIPT, "src/Login.tsx")
        assert patterns[0].type is PatternType.COMPONENT

    def test_python_dunder_all_overrides_exports(self):
        content = "from .core import run\n__all__ = ['run']\n\ndef helper():\n    pass\n"
        imports, exports, _ = extract_structure(content, FileType.PYTHON, "pkg/__init__.py")

        assert imports == [".core"]
        assert exports == ["run"]

    def test_unparsable_python(self):
        assert extract_structure("def broken(:\n", FileType.PYTHON, "bad.py") == ([], [], [])

    def test_other_types_have_no_structure(self):
        assert extract_structure('{"a": 1}', FileType.JSON, "a.json") == ([], [], [])


class TestRelevance:
    """Test cases for relevance scoring."""

    def test_score_components(self):
        info = FileInfo("src/auth/login.ts", FileType.TYPESCRIPT, imports=["./session"], exports=["login"])
        task = TaskDescription("Fix login", "Fix login", TaskIntent.BUGFIX, ("login",))

        assert calculate_relevance_score(info, task) == 10 + 5 + 3

    def test_find_relevant_files(self, snapshot):
        analysis = snapshot({"src/auth.py": "", "src/authz/rules.py": "", "src/misc.py": ""})
        task = TaskDescription("Fix auth", "Fix auth", TaskIntent.BUGFIX, ("auth",))

        assert [info.path for info in find_relevant_files(task, analysis)] == ["src/auth.py", "src/authz/rules.py"]
        assert [info.path for info in find_relevant_files(task, analysis, limit=1)] == ["src/auth.py"]

    def test_no_scope_means_no_relevant_files(self, snapshot):
        task = TaskDescription("Do it", "Do it", TaskIntent.FEATURE, ())
        assert find_relevant_files(task, snapshot({"a.py": ""})) == []


class TestDetectChanges:
    def test_detects_created_modified_and_deleted(self, snapshot):
        before = snapshot({"keep.py": "same", "edit.py": "old", "gone.py": "bye", "locked.py": None})
        after = snapshot({"keep.py": "same", "edit.py": "new", "fresh.py": "hi", "locked.py": None})

        assert detect_changes(before, after) == {
            "edit.py": ObservedState.MODIFIED,
            "fresh.py": ObservedState.CREATED,
            "gone.py": ObservedState.ABSENT,
        }
