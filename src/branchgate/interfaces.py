"""Collaborator interfaces the orchestrator depends on.

The job runner, git helper and project store are owned by the host
application. Local implementations live in :mod:`branchgate.jobs`,
:mod:`branchgate.utils.git` and :mod:`branchgate.store`.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from branchgate.models.test_run import JobStatus, LogEntry
from branchgate.utils.paths import normalize_relative_path

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from branchgate.models.test_run import TestRunResult
    from branchgate.utils.git import GitCommandResult


# ── Job runner ───────────────────────────────────────────────────


@dataclass(frozen=True)
class JobSpec:
    """What to run for one workspace."""

    command: str
    args: tuple[str, ...]
    cwd: Path
    display_name: str = ""
    project_id: str | None = None
    job_type: str = "test-run"
    env: dict[str, str] = field(default_factory=dict)


@dataclass
class Job:
    """Handle returned by :meth:`JobRunner.start_job`."""

    id: str
    spec: JobSpec
    status: JobStatus = JobStatus.RUNNING
    started_at: str | None = None
    """ISO 8601 start time."""
    completed_at: str | None = None

    @property
    def project_id(self) -> str | None:
        return self.spec.project_id

    @property
    def job_type(self) -> str:
        return self.spec.job_type


@dataclass
class JobCompletion:
    """Final state of a job."""

    job_id: str
    status: JobStatus
    exit_code: int | None = None
    logs: list[LogEntry] = field(default_factory=list)


class JobRunner(ABC):
    """Spawns workspace commands and reports their completion."""

    @abstractmethod
    def start_job(self, spec: JobSpec) -> Job:
        """Start *spec* and return immediately with a job handle."""

    @abstractmethod
    async def wait_for_job_completion(self, job_id: str) -> JobCompletion | None:
        """Wait for *job_id* to finish.

        ``None`` means the runner lost track of the job; callers treat it as
        status unknown.
        """

    @abstractmethod
    def get_job(self, job_id: str) -> Job | None:
        """Return the job with *job_id*, finished or not, or ``None``."""


# ── Git ──────────────────────────────────────────────────────────


class GitHelper(ABC):
    """The git operations the gate needs."""

    @abstractmethod
    def run_git_command(self, cwd: Path | str, args: Sequence[str]) -> GitCommandResult:
        """Run ``git <args>`` in *cwd*."""

    @abstractmethod
    def ensure_git_repository(self, path: Path | str) -> None:
        """Raise ``GitOperationError`` unless *path* is a git work tree."""

    @abstractmethod
    def get_current_branch(self, path: Path | str) -> str:
        """Return the checked-out branch name."""

    @abstractmethod
    def ref_exists(self, path: Path | str, ref: str) -> bool:
        """Return True when *ref* resolves to a commit."""


# ── Persistence ──────────────────────────────────────────────────


@dataclass
class ProjectRecord:
    """A project as stored by the host application."""

    id: str
    name: str = ""
    path: str | None = None


def _sanitize_staged_entry(entry: Any) -> str:
    if isinstance(entry, str):
        return normalize_relative_path(entry)
    if isinstance(entry, dict):
        return normalize_relative_path(entry.get("path"))
    return ""


@dataclass
class BranchRecord:
    """A branch as stored by the host application."""

    name: str
    id: str | None = None
    is_current: bool = False
    staged_files: str | list[Any] | None = None
    """JSON column (or already-decoded list) of staged entries; each entry is
    a path string or ``{"path": ...}``."""
    status: str = "active"

    def staged_paths(self) -> list[str]:
        """Decode :attr:`staged_files` into normalized, non-empty paths."""
        raw: Any = self.staged_files
        if isinstance(raw, str):
            try:
                raw = json.loads(raw) if raw.strip() else []
            except ValueError:
                raw = []
        if not isinstance(raw, list):
            return []
        return [path for path in (_sanitize_staged_entry(entry) for entry in raw) if path]


class ProjectStore(ABC):
    """Project, branch and test-run persistence."""

    @abstractmethod
    def get_project(self, project_id: str) -> ProjectRecord | None:
        """Return the project or ``None`` when it does not exist."""

    @abstractmethod
    def get_branch(self, project_id: str, branch_name: str) -> BranchRecord | None:
        """Return the named branch or ``None``."""

    @abstractmethod
    def get_current_branch(self, project_id: str) -> BranchRecord | None:
        """Return the branch flagged ``is_current``, if any."""

    @abstractmethod
    def record_test_run(
        self,
        project_id: str,
        branch: BranchRecord,
        result: TestRunResult,
    ) -> None:
        """Persist *result* for *branch* and update the branch status."""
