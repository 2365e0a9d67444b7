"""Data models for branchgate."""

from branchgate.models.coverage import (
    DIMENSIONS,
    CoverageMetric,
    CoverageTotals,
    Thresholds,
    UncoveredLinesEntry,
)
from branchgate.models.test_run import (
    ChangedFileGateResult,
    ChangedFileWorkspaceGate,
    CoverageGateResult,
    JobStatus,
    LogEntry,
    RunStatus,
    TestRunResult,
    WorkspaceRun,
)

__all__ = [
    "DIMENSIONS",
    "ChangedFileGateResult",
    "ChangedFileWorkspaceGate",
    "CoverageGateResult",
    "CoverageMetric",
    "CoverageTotals",
    "JobStatus",
    "LogEntry",
    "RunStatus",
    "TestRunResult",
    "Thresholds",
    "UncoveredLinesEntry",
    "WorkspaceRun",
]
