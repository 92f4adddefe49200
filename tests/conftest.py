"""Shared fixtures for taskplan tests."""

import hashlib
from pathlib import Path
from typing import Dict, Optional

import pytest

from taskplan.analysis import get_file_type
from taskplan.config import PlannerConfig
from taskplan.models import FileInfo, WorkspaceAnalysis

PROJECT_FILES = {
    "README.md": "# Demo\n\nA small demo project.\n",
    "demo/__init__.py": "",
    "demo/auth.py": (
        "import hashlib\n"
        "\n"
        "\n"
        "def login(user, password):\n"
        "    return hashlib.sha256(password.encode()).hexdigest() == user.password_hash\n"
        "\n"
        "\n"
        "class Session:\n"
        "    pass\n"
    ),
    "demo/api.py": (
        "from demo.auth import login\n"
        "\n"
        "\n"
        "def handle_request(request):\n"
        "    return login(request.user, request.password)\n"
    ),
    "tests/test_api.py": "from demo.api import handle_request\n",
    "node_modules/pkg/index.js": "module.exports = {};\n",
}


def digest(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def write_files(root: Path, files: Dict[str, str]) -> None:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


@pytest.fixture
def project(tmp_path):
    """A small Python project on disk."""
    write_files(tmp_path, PROJECT_FILES)
    return tmp_path


@pytest.fixture
def config():
    """Config independent of TASKPLAN_* variables in the environment."""
    return PlannerConfig(max_workers=2)


@pytest.fixture
def snapshot():
    """Factory building a WorkspaceAnalysis from ``{path: content}``.

    A value of ``None`` produces an unreadable file entry.
    """

    def build(files: Dict[str, Optional[str]], root: str = "/workspace") -> WorkspaceAnalysis:
        infos = []
        for path in sorted(files):
            content = files[path]
            if content is None:
                infos.append(FileInfo(path=path, type=get_file_type(path), error="unreadable (PermissionError)"))
            else:
                infos.append(
                    FileInfo(
                        path=path,
                        type=get_file_type(path),
                        size=len(content.encode("utf-8")),
                        digest=digest(content),
                    )
                )
        return WorkspaceAnalysis(root_path=root, files=infos)

    return build
