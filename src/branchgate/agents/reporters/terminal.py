"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from branchgate.adapters.coverage.coverage_py_adapter import percent_covered
from branchgate.models.coverage import DIMENSIONS, CoverageMetric

if TYPE_CHECKING:
    from collections.abc import Sequence

    from branchgate.models.coverage import Thresholds, UncoveredLinesEntry
    from branchgate.models.test_run import (
        ChangedFileGateResult,
        CoverageGateResult,
        TestRunResult,
        WorkspaceRun,
    )

console = Console()


_SECONDS_PER_MINUTE = 60.0
_MAX_LINES_DISPLAY = 12
_MAX_LOG_TAIL = 15


def _format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string."""
    if seconds >= _SECONDS_PER_MINUTE:
        return f"{seconds / _SECONDS_PER_MINUTE:.1f}m"
    return f"{seconds:.1f}s"


def _format_pct(value: float | None, threshold: float | None = None) -> str:
    if value is None:
        return "[red]n/a[/red]"
    if threshold is None:
        return f"{value:.1f}%"
    color = "green" if value >= threshold else "red"
    return f"[{color}]{value:.1f}%[/{color}]"


def _format_lines(lines: Sequence[int]) -> str:
    shown = ", ".join(str(line) for line in lines[:_MAX_LINES_DISPLAY])
    if len(lines) > _MAX_LINES_DISPLAY:
        shown += f" … (+{len(lines) - _MAX_LINES_DISPLAY})"
    return shown


class CLIReporter:
    """Rich terminal output for workspace detection and branch test runs."""

    def __init__(self, output: Console | None = None) -> None:
        self.console = output or console

    def print_header(self, title: str) -> None:
        """Print a bold header."""
        self.console.print(f"\n[bold cyan]{title}[/bold cyan]\n")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        """Print an error message."""
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[dim]{message}[/dim]")

    # ── Detection ──────────────────────────────────────────────────

    def print_workspaces(self, workspaces: Sequence[dict[str, Any]]) -> None:
        """Print a table of detected workspaces (detector agent payloads)."""
        table = Table(title="Detected Workspaces", title_style="bold cyan")
        table.add_column("Workspace", style="bold")
        table.add_column("Kind")
        table.add_column("Command")
        table.add_column("Coverage Artifact", style="dim")

        for workspace in workspaces:
            command = workspace.get("testCommand")
            table.add_row(
                workspace["name"],
                workspace["kind"],
                " ".join(command) if command else "-",
                workspace["coveragePath"],
            )

        self.console.print(table)

    # ── Test runs ──────────────────────────────────────────────────

    def print_workspace_runs(self, runs: Sequence[WorkspaceRun]) -> None:
        """Print one row per workspace job."""
        table = Table(title="Workspace Runs", title_style="bold cyan")
        table.add_column("Workspace", style="bold")
        table.add_column("Kind")
        table.add_column("Status", justify="center")
        table.add_column("Exit", justify="right")
        table.add_column("Duration", justify="right")
        table.add_column("Lines", justify="right")

        for run in runs:
            status_color = "green" if run.succeeded else "red"
            if isinstance(run.coverage, CoverageMetric):
                lines = _format_pct(run.coverage.lines)
            elif isinstance(run.coverage, dict):
                python_pct = percent_covered(run.coverage)
                lines = _format_pct(python_pct) if python_pct is not None else "[dim]raw[/dim]"
            else:
                lines = "[dim]-[/dim]"
            table.add_row(
                run.workspace,
                run.kind,
                f"[{status_color}]{run.status.value}[/{status_color}]",
                str(run.exit_code) if run.exit_code is not None else "-",
                _format_duration(run.duration_ms / 1000),
                lines,
            )

        self.console.print(table)

    def print_failed_logs(self, runs: Sequence[WorkspaceRun]) -> None:
        """Print the tail of the logs of every failed workspace."""
        for run in runs:
            if run.succeeded or not run.logs:
                continue
            tail = run.logs[-_MAX_LOG_TAIL:]
            body = "\n".join(f"{entry.stream}: {entry.message}" for entry in tail)
            self.console.print(
                Panel(body, title=f"{run.workspace} ({run.kind}) log tail", border_style="red")
            )

    def _metric_table(
        self,
        title: str,
        rows: Sequence[tuple[str, CoverageMetric | None]],
        thresholds: Thresholds,
    ) -> Table:
        table = Table(title=title, title_style="bold cyan")
        table.add_column("Scope", style="bold")
        for dimension in DIMENSIONS:
            table.add_column(dimension.capitalize(), justify="right")

        table.add_row(
            "[dim]threshold[/dim]",
            *(f"[dim]{thresholds.get(dimension):.1f}%[/dim]" for dimension in DIMENSIONS),
        )
        for label, metric in rows:
            if metric is None:
                table.add_row(label, *("[dim]-[/dim]" for _ in DIMENSIONS))
                continue
            table.add_row(
                label,
                *(_format_pct(metric.get(d), thresholds.get(d)) for d in DIMENSIONS),
            )
        return table

    def print_coverage_gate(self, gate: CoverageGateResult) -> None:
        """Print aggregate and changed-file coverage verdicts."""
        self.console.print(
            self._metric_table("Aggregate Coverage", [("total", gate.totals)], gate.thresholds)
        )
        if gate.passed:
            self.print_success("Aggregate coverage gate passed")
        elif gate.missing:
            self.print_error(f"Coverage summary missing for: {', '.join(gate.missing)}")
        else:
            self.print_error(f"Aggregate coverage below threshold ({gate.failed_dimension})")

        self.print_changed_files_gate(gate.changed_files)

        if gate.uncovered_lines:
            self.print_uncovered_lines(gate.uncovered_lines)

    def print_changed_files_gate(self, gate: ChangedFileGateResult) -> None:
        """Print the changed-file verdict per workspace."""
        rows = []
        for workspace_gate in gate.workspaces:
            label = workspace_gate.workspace
            if workspace_gate.skipped:
                label += f" [dim](skipped: {workspace_gate.reason})[/dim]"
            rows.append((label, workspace_gate.totals))

        if rows:
            self.console.print(
                self._metric_table("Changed-File Coverage", rows, gate.thresholds)
            )
        for missing in gate.missing:
            self.print_warning(f"No usable coverage for changed file {missing}")

        if gate.passed:
            self.print_success("Changed-file coverage gate passed")
        else:
            self.print_error("Changed-file coverage gate failed")

    def print_uncovered_lines(self, entries: Sequence[UncoveredLinesEntry]) -> None:
        """Print uncovered line numbers per file."""
        table = Table(title="Uncovered Lines", title_style="bold yellow")
        table.add_column("Workspace", style="bold")
        table.add_column("File")
        table.add_column("Lines")

        for entry in entries:
            table.add_row(entry.workspace, entry.file, _format_lines(entry.lines) or "[dim]-[/dim]")

        self.console.print(table)

    def print_test_run(self, result: TestRunResult) -> None:
        """Print the full report of one branch test run."""
        if result.simulated:
            self.print_info("Simulated run: no workspace jobs were started")

        if result.workspace_runs:
            self.print_workspace_runs(result.workspace_runs)
            self.print_failed_logs(result.workspace_runs)
        if result.coverage is not None:
            self.print_coverage_gate(result.coverage)

        self.console.print()
        if result.success:
            body = f"[bold green]PASSED[/bold green]  [dim]{_format_duration(result.duration)}[/dim]"
            border = "green"
        else:
            body = f"[bold red]FAILED[/bold red]  {result.error or ''}"
            border = "red"
        self.console.print(Panel(body, border_style=border, padding=(0, 2)))


reporter = CLIReporter()
