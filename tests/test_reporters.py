"""Tests for the terminal (Rich) and JSON reporters."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from rich.console import Console

from branchgate import __version__
from branchgate.agents.detectors.workspace import Workspace, WorkspaceKind, python_command
from branchgate.agents.reporters import CLIReporter, JSONReporter
from branchgate.agents.reporters.terminal import _format_duration, _format_lines, _format_pct
from branchgate.models.coverage import CoverageMetric, Thresholds, UncoveredLinesEntry
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

# ── Fixtures ─────────────────────────────────────────────────────


@pytest.fixture
def recorded() -> tuple[CLIReporter, Console]:
    """Return a reporter writing to a recording console."""
    output = Console(record=True, width=200, color_system=None)
    return CLIReporter(output), output


def _failed_result() -> TestRunResult:
    changed = ChangedFileGateResult(
        passed=False,
        thresholds=Thresholds(90, 90, 90, 90),
        missing=["frontend/src/new.js"],
        workspaces=[
            ChangedFileWorkspaceGate(
                workspace="frontend",
                thresholds=Thresholds(90, 90, 90, 90),
                passed=False,
                missing=["frontend/src/new.js"],
            ),
            ChangedFileWorkspaceGate(
                workspace="backend",
                thresholds=Thresholds(90, 90, 90, 90),
                skipped=True,
                reason="per_file_coverage_unavailable",
            ),
        ],
    )
    gate = CoverageGateResult(
        passed=False,
        thresholds=Thresholds(),
        changed_files=changed,
        totals=CoverageMetric(99, 100, 100, 100),
        uncovered_lines=[UncoveredLinesEntry("frontend", "src/foo.js", [2, 4])],
        failed_dimension="lines",
    )
    runs = [
        WorkspaceRun(
            workspace="frontend",
            kind="frontend-node",
            status=JobStatus.FAILED,
            exit_code=1,
            logs=[LogEntry("stderr", "1 test failed", "t")],
            coverage=CoverageMetric(99, 100, 100, 100),
            duration_ms=2500,
        ),
        WorkspaceRun(
            workspace="backend",
            kind="backend-python",
            status=JobStatus.SUCCEEDED,
            exit_code=0,
            coverage={"raw": {"totals": {"percent_covered": 87.5}}},
            duration_ms=1000,
        ),
    ]
    return TestRunResult(
        status=RunStatus.FAILED,
        workspace_runs=runs,
        coverage=gate,
        error="Branch feature has failing tests",
    )


# ── Helpers ──────────────────────────────────────────────────────


class TestFormatting:
    def test_duration(self) -> None:
        assert _format_duration(5.0) == "5.0s"
        assert _format_duration(90.0) == "1.5m"

    def test_pct(self) -> None:
        assert _format_pct(None) == "[red]n/a[/red]"
        assert _format_pct(80.0) == "80.0%"
        assert _format_pct(80.0, 90.0) == "[red]80.0%[/red]"
        assert _format_pct(95.0, 90.0) == "[green]95.0%[/green]"

    def test_lines_are_truncated(self) -> None:
        assert _format_lines([1, 2, 3]) == "1, 2, 3"
        assert _format_lines(list(range(1, 20))).endswith("(+7)")


# ── Terminal reporter ────────────────────────────────────────────


class TestCLIReporter:
    def test_print_workspaces(self, recorded: tuple[CLIReporter, Console]) -> None:
        reporter, output = recorded
        workspaces = [
            Workspace(
                WorkspaceKind.BACKEND_PYTHON, "backend", Path("/repo/backend"), python_command()
            ).to_dict()
        ]

        reporter.print_workspaces(workspaces)

        text = output.export_text()
        assert "backend-python" in text
        assert "python -m pytest" in text

    def test_failed_run_report(self, recorded: tuple[CLIReporter, Console]) -> None:
        reporter, output = recorded

        reporter.print_test_run(_failed_result())

        text = output.export_text()
        assert "Workspace Runs" in text
        assert "87.5%" in text
        assert "1 test failed" in text
        assert "Aggregate coverage below threshold (lines)" in text
        assert "No usable coverage for changed file frontend/src/new.js" in text
        assert "skipped: per_file_coverage_unavailable" in text
        assert "src/foo.js" in text
        assert "FAILED" in text
        assert "Branch feature has failing tests" in text

    def test_missing_summary_message(self, recorded: tuple[CLIReporter, Console]) -> None:
        reporter, output = recorded
        gate = CoverageGateResult(
            passed=False,
            thresholds=Thresholds(),
            changed_files=ChangedFileGateResult(passed=True, thresholds=Thresholds()),
            missing=["backend"],
        )

        reporter.print_coverage_gate(gate)

        text = output.export_text()
        assert "Coverage summary missing for: backend" in text
        assert "Changed-file coverage gate passed" in text

    def test_simulated_pass(self, recorded: tuple[CLIReporter, Console]) -> None:
        reporter, output = recorded

        reporter.print_test_run(TestRunResult(status=RunStatus.PASSED, simulated=True))

        text = output.export_text()
        assert "Simulated run" in text
        assert "PASSED" in text
        assert "Workspace Runs" not in text


# ── JSON reporter ────────────────────────────────────────────────


class TestJSONReporter:
    def test_generate_string(self) -> None:
        report = json.loads(JSONReporter().generate_string(result=_failed_result(), branch="feature"))

        assert report["tool"] == "branchgate"
        assert report["version"] == __version__
        assert report["timestamp"]
        assert report["branch"] == "feature"
        assert report["result"]["status"] == "failed"
        assert report["result"]["summary"]["coverage"]["uncoveredLines"] == [
            {"workspace": "frontend", "file": "src/foo.js", "lines": [2, 4]}
        ]
        assert report["result"]["summary"]["duration"] == 3.5

    def test_generate_writes_file(self, tmp_path: Path) -> None:
        target = tmp_path / "reports" / "gate.json"

        written = JSONReporter().generate(target, result=TestRunResult(status=RunStatus.PASSED))

        assert written == target
        assert json.loads(target.read_text(encoding="utf-8"))["result"]["success"] is True

    def test_workspaces_string(self) -> None:
        workspace = Workspace(WorkspaceKind.ROOT_NODE, "root", Path("/repo"), None)

        report = json.loads(JSONReporter().workspaces_string([workspace.to_dict()]))

        assert report["workspaces"] == [
            {
                "kind": "root-node",
                "name": "root",
                "directory": "/repo",
                "testCommand": None,
                "coveragePath": "/repo/coverage/coverage-summary.json",
            }
        ]
