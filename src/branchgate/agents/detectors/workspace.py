"""Workspace detector: classify a project root into testable workspaces."""

from __future__ import annotations

import contextlib
import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from branchgate.agents.base import BaseAgent, TaskInput, TaskOutput, TaskStatus
from branchgate.errors import NoTestableWorkspaceError

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────

_NODE_MANIFEST = "package.json"
_PYTHON_MANIFEST = "requirements.txt"
_COVERAGE_SCRIPT = "test:coverage"

_NODE_SUMMARY = ("coverage", "coverage-summary.json")
_NODE_FINAL = ("coverage", "coverage-final.json")
_PYTHON_COVERAGE = "coverage.json"


# ── Data models ────────────────────────────────────────────────────


class WorkspaceKind(Enum):
    ROOT_NODE = "root-node"
    FRONTEND_NODE = "frontend-node"
    BACKEND_NODE = "backend-node"
    BACKEND_PYTHON = "backend-python"

    @property
    def is_node(self) -> bool:
        return self is not WorkspaceKind.BACKEND_PYTHON


# Stable discovery order used to sort workspace runs.
DISCOVERY_ORDER: tuple[WorkspaceKind, ...] = (
    WorkspaceKind.ROOT_NODE,
    WorkspaceKind.FRONTEND_NODE,
    WorkspaceKind.BACKEND_NODE,
    WorkspaceKind.BACKEND_PYTHON,
)


@dataclass(frozen=True)
class TestCommand:
    """Program and arguments of a workspace's coverage run."""

    __test__ = False

    program: str
    args: tuple[str, ...] = ()

    def as_list(self) -> list[str]:
        return [self.program, *self.args]

    def __str__(self) -> str:
        return " ".join(self.as_list())


@dataclass(frozen=True)
class Workspace:
    """An independently testable subtree of the project."""

    kind: WorkspaceKind
    name: str
    """``root``, ``frontend`` or ``backend``."""
    directory: Path
    """Absolute workspace directory."""
    test_command: TestCommand | None = None

    @property
    def coverage_path(self) -> Path:
        """Location of the coverage summary artifact this workspace produces."""
        if self.kind.is_node:
            return self.directory.joinpath(*_NODE_SUMMARY)
        return self.directory / _PYTHON_COVERAGE

    @property
    def coverage_final_path(self) -> Path | None:
        """Istanbul per-statement artifact (Node workspaces only)."""
        if self.kind.is_node:
            return self.directory.joinpath(*_NODE_FINAL)
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "directory": str(self.directory),
            "testCommand": self.test_command.as_list() if self.test_command else None,
            "coveragePath": str(self.coverage_path),
        }


# ── Command resolution ─────────────────────────────────────────────


def _read_json(path: Path) -> Any:
    """Read and parse a JSON file, returning ``None`` on any error."""
    with contextlib.suppress(OSError, ValueError):
        return json.loads(path.read_text(encoding="utf-8"))
    return None


def resolve_node_command(workspace_dir: Path) -> TestCommand:
    """Pick the coverage command for a Node workspace.

    Prefers ``npm run test:coverage`` and falls back to
    ``npm test -- --coverage``. A ``scripts`` value that is not an object is
    treated as absent.
    """
    pkg = _read_json(workspace_dir / _NODE_MANIFEST)
    scripts = pkg.get("scripts") if isinstance(pkg, dict) else None
    if not isinstance(scripts, dict):
        scripts = {}

    script = scripts.get(_COVERAGE_SCRIPT)
    if isinstance(script, str) and script.strip():
        return TestCommand("npm", ("run", _COVERAGE_SCRIPT))
    return TestCommand("npm", ("test", "--", "--coverage"))


def python_command() -> TestCommand:
    return TestCommand(
        "python",
        ("-m", "pytest", "--cov", f"--cov-report=json:{_PYTHON_COVERAGE}"),
    )


# ── Detection ────────────────────────────────────────────────────


def detect_workspaces(root: str | Path) -> list[Workspace]:
    """Classify *root* into testable workspaces.

    Rules are applied in a fixed order: ``frontend/package.json``, then
    ``backend/package.json``, then a root ``package.json`` only when neither
    of the first two exists, and independently ``backend/requirements.txt``.

    Raises:
        NoTestableWorkspaceError: If no workspace marker is present.
    """
    root_path = Path(root)
    frontend_dir = root_path / "frontend"
    backend_dir = root_path / "backend"

    workspaces: list[Workspace] = []

    if (frontend_dir / _NODE_MANIFEST).is_file():
        workspaces.append(
            Workspace(
                kind=WorkspaceKind.FRONTEND_NODE,
                name="frontend",
                directory=frontend_dir,
                test_command=resolve_node_command(frontend_dir),
            )
        )

    if (backend_dir / _NODE_MANIFEST).is_file():
        workspaces.append(
            Workspace(
                kind=WorkspaceKind.BACKEND_NODE,
                name="backend",
                directory=backend_dir,
                test_command=resolve_node_command(backend_dir),
            )
        )

    if not workspaces and (root_path / _NODE_MANIFEST).is_file():
        workspaces.append(
            Workspace(
                kind=WorkspaceKind.ROOT_NODE,
                name="root",
                directory=root_path,
                test_command=resolve_node_command(root_path),
            )
        )

    if (backend_dir / _PYTHON_MANIFEST).is_file():
        workspaces.append(
            Workspace(
                kind=WorkspaceKind.BACKEND_PYTHON,
                name="backend",
                directory=backend_dir,
                test_command=python_command(),
            )
        )

    if not workspaces:
        raise NoTestableWorkspaceError

    workspaces.sort(key=lambda ws: DISCOVERY_ORDER.index(ws.kind))
    logger.debug(
        "Detected workspaces in %s: %s",
        root_path,
        ", ".join(ws.kind.value for ws in workspaces),
    )
    return workspaces


# ── Agent wrapper ───────────────────────────────────────────────────


class WorkspaceDetector(BaseAgent):
    """Agent that detects the testable workspaces of a project."""

    @property
    def name(self) -> str:
        return "workspace-detector"

    @property
    def description(self) -> str:
        return "Detect Node and Python test workspaces and their coverage commands."

    async def run(self, task: TaskInput) -> TaskOutput:
        """Run workspace detection on *task.target*."""
        try:
            workspaces = detect_workspaces(task.target)
        except NoTestableWorkspaceError as exc:
            return TaskOutput(
                status=TaskStatus.FAILED,
                errors=[str(exc)],
                status_code=exc.status_code,
            )

        return TaskOutput(
            status=TaskStatus.COMPLETED,
            result={"workspaces": [ws.to_dict() for ws in workspaces]},
        )
