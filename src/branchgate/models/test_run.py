"""Test run and gate result models.

Every result type exposes ``to_dict()`` producing the camelCase payload that
is persisted with the test run and returned to API callers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from branchgate.models.coverage import CoverageMetric, Thresholds, UncoveredLinesEntry


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class RunStatus(Enum):
    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True)
class LogEntry:
    """A single line of job output."""

    stream: str
    """``stdout`` or ``stderr``."""

    message: str

    timestamp: str
    """ISO 8601 timestamp at which the line was captured."""

    def to_dict(self) -> dict[str, str]:
        return {"stream": self.stream, "message": self.message, "timestamp": self.timestamp}


@dataclass
class WorkspaceRun:
    """Outcome of running one workspace's coverage command."""

    workspace: str
    """Workspace name (``root``, ``frontend`` or ``backend``)."""

    kind: str
    """Workspace kind value (e.g. ``frontend-node``)."""

    status: JobStatus

    exit_code: int | None = None

    logs: list[LogEntry] = field(default_factory=list)

    coverage: CoverageMetric | dict[str, Any] | None = None
    """Node totals, ``{"raw": ...}`` for Python, or ``None`` when no artifact
    was produced."""

    duration_ms: int = 0

    job_id: str | None = None
    """Set when the run was proven by a recorded job instead of executed."""

    command: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is JobStatus.SUCCEEDED

    def to_dict(self) -> dict[str, Any]:
        coverage: Any = self.coverage
        if isinstance(coverage, CoverageMetric):
            coverage = coverage.to_dict()
        payload: dict[str, Any] = {
            "workspace": self.workspace,
            "kind": self.kind,
            "status": self.status.value,
            "exitCode": self.exit_code,
            "durationMs": self.duration_ms,
            "logs": [entry.to_dict() for entry in self.logs],
            "coverage": coverage,
        }
        if self.job_id is not None:
            payload["jobId"] = self.job_id
            payload["command"] = self.command
        return payload


@dataclass
class ChangedFileWorkspaceGate:
    """Changed-file coverage verdict for one Node workspace."""

    workspace: str
    thresholds: Thresholds
    passed: bool = True
    missing: list[str] = field(default_factory=list)
    totals: CoverageMetric | None = None
    skipped: bool = False
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "workspace": self.workspace,
            "thresholds": self.thresholds.to_dict(),
            "passed": self.passed,
            "missing": list(self.missing),
            "totals": self.totals.to_dict() if self.totals else None,
            "skipped": self.skipped,
            "reason": self.reason,
        }


@dataclass
class ChangedFileGateResult:
    """Changed-file verdict combined across workspaces."""

    passed: bool
    thresholds: Thresholds
    missing: list[str] = field(default_factory=list)
    totals: CoverageMetric | None = None
    workspaces: list[ChangedFileWorkspaceGate] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "thresholds": self.thresholds.to_dict(),
            "missing": list(self.missing),
            "totals": self.totals.to_dict() if self.totals else None,
            "workspaces": [gate.to_dict() for gate in self.workspaces],
        }


@dataclass
class CoverageGateResult:
    """Aggregate coverage verdict plus changed-file and uncovered-line details."""

    passed: bool
    thresholds: Thresholds
    changed_files: ChangedFileGateResult
    missing: list[str] = field(default_factory=list)
    totals: CoverageMetric | None = None
    uncovered_lines: list[UncoveredLinesEntry] | None = None
    failed_dimension: str | None = None
    """First dimension (in ``lines → statements → functions → branches``
    order) that missed its threshold."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "missing": list(self.missing),
            "totals": self.totals.to_dict() if self.totals else None,
            "thresholds": self.thresholds.to_dict(),
            "failedDimension": self.failed_dimension,
            "uncoveredLines": (
                [entry.to_dict() for entry in self.uncovered_lines]
                if self.uncovered_lines is not None
                else None
            ),
            "changedFiles": self.changed_files.to_dict(),
        }


@dataclass
class TestRunResult:
    """Final verdict of one orchestration call."""

    __test__ = False

    status: RunStatus
    workspace_runs: list[WorkspaceRun] = field(default_factory=list)
    coverage: CoverageGateResult | None = None
    error: str | None = None
    simulated: bool = False
    proof_source: str | None = None
    """``recorded-jobs`` when the result was proven from finished jobs."""

    @property
    def success(self) -> bool:
        return self.status is RunStatus.PASSED

    @property
    def duration(self) -> float:
        """Total workspace run time in seconds, rounded to two decimals."""
        return round(sum(run.duration_ms for run in self.workspace_runs) / 1000, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "success": self.success,
            "workspaceRuns": [run.to_dict() for run in self.workspace_runs],
            "summary": {
                "duration": self.duration,
                "simulated": self.simulated,
                **({"proofSource": self.proof_source} if self.proof_source else {}),
                "coverage": self.coverage.to_dict() if self.coverage else None,
            },
            "error": self.error,
        }
