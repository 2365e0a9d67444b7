"""branchgate CLI: top-level command group."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import click
import yaml
from rich.console import Console

from branchgate import __version__
from branchgate.agents.base import TaskInput
from branchgate.agents.detectors.workspace import WorkspaceDetector
from branchgate.agents.reporters.json_reporter import JSONReporter
from branchgate.agents.reporters.terminal import reporter
from branchgate.config import ConfigError, load_config, validate_config
from branchgate.errors import BranchGateError
from branchgate.jobs import LocalJobRunner
from branchgate.models.options import WORKSPACE_SCOPES, TestRunOptions
from branchgate.orchestrator import BranchTestOrchestrator
from branchgate.store import LocalProjectStore
from branchgate.utils.git import SubprocessGitHelper

if TYPE_CHECKING:
    from branchgate.config import BranchGateConfig
    from branchgate.interfaces import Job, JobCompletion

logger = logging.getLogger(__name__)
console = Console()

EXIT_GATE_FAILED = 1
EXIT_CONFIG_ERROR = 2

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _ci_mode(*, as_json: bool = False) -> bool:
    ctx = click.get_current_context()
    return bool(ctx.obj and ctx.obj.get("ci", False)) or as_json


def _load_valid_config(path: str) -> BranchGateConfig:
    """Load and validate ``.branchgate.yml`` or exit with the config error code."""
    try:
        config = load_config(path)
    except ConfigError as exc:
        reporter.print_error(f"Failed to load configuration: {exc}")
        raise SystemExit(EXIT_CONFIG_ERROR) from exc

    errors = validate_config(config)
    if errors:
        reporter.print_error(f"Found {len(errors)} configuration error(s):")
        for error in errors:
            console.print(f"  • [red]{error}[/red]")
        raise SystemExit(EXIT_CONFIG_ERROR)
    return config


_path_option = click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)


@click.group()
@click.option(
    "--ci",
    is_flag=True,
    help="CI mode: machine-readable JSON output and pass/fail exit codes.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.version_option(version=__version__, prog_name="branchgate")
@click.pass_context
def cli(ctx: click.Context, *, ci: bool, verbose: bool) -> None:
    """branchgate: per-branch test and coverage gate."""
    ctx.ensure_object(dict)
    ctx.obj["ci"] = ci
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=_LOG_FORMAT)


# ── run ──────────────────────────────────────────────────────────


@cli.command("run")
@_path_option
@click.option("--branch", default=None, help="Branch to test (default: current branch).")
@click.option(
    "--changed-file",
    "changed_files",
    multiple=True,
    help="Changed path relative to the project root (repeatable). Overrides git diff.",
)
@click.option(
    "--no-enforce-changed",
    is_flag=True,
    help="Skip the changed-file coverage gate.",
)
@click.option(
    "--include-line-refs",
    is_flag=True,
    help="Report uncovered lines for every covered file, not only changed ones.",
)
@click.option(
    "--scope",
    type=click.Choice(WORKSPACE_SCOPES),
    default="all",
    show_default=True,
    help="Run all workspaces or only those touched by the changes.",
)
@click.option("--real", is_flag=True, help="Run jobs even when execution.simulate is on.")
@click.option("--json-output", "as_json", is_flag=True, help="Output the result as JSON.")
@click.option(
    "--report-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also write the JSON report to this file.",
)
def run_command(
    path: str,
    branch: str | None,
    changed_files: tuple[str, ...],
    *,
    no_enforce_changed: bool,
    include_line_refs: bool,
    scope: str,
    real: bool,
    as_json: bool,
    report_file: Path | None,
) -> None:
    """Run every workspace's coverage command and gate the branch.

    Exit codes: 0 passed, 1 tests or coverage failed, 2 configuration or
    project structure error.

    Example:
      branchgate run --branch feature/login
      branchgate run --changed-file frontend/src/App.jsx --scope changed
    """
    ci_mode = _ci_mode(as_json=as_json)
    config = _load_valid_config(path)

    git = SubprocessGitHelper()
    store = LocalProjectStore(path, git=git)
    orchestrator = BranchTestOrchestrator(
        job_runner=LocalJobRunner(timeout=config.execution.job_timeout),
        store=store,
        git=git,
        config=config,
    )

    def _on_started(job: Job) -> None:
        if not ci_mode:
            command = " ".join([job.spec.command, *job.spec.args])
            reporter.print_info(f"Started {job.spec.display_name}: {command}")

    def _on_completed(completion: JobCompletion | None) -> None:
        if not ci_mode and completion is not None:
            reporter.print_info(f"Job {completion.job_id[:8]} finished: {completion.status.value}")

    options = TestRunOptions(
        real=real,
        changed_files=list(changed_files) or None,
        enforce_changed_file_coverage=False if no_enforce_changed else None,
        include_coverage_line_refs=include_line_refs,
        workspace_scope=scope,
        on_job_started=_on_started,
        on_job_completed=_on_completed,
    )

    try:
        result = asyncio.run(orchestrator.run_tests_for_branch(store.project_id, branch, options))
    except BranchGateError as exc:
        if ci_mode:
            click.echo(json.dumps({"error": str(exc), "statusCode": exc.status_code}, indent=2))
        else:
            reporter.print_error(str(exc))
        raise SystemExit(EXIT_CONFIG_ERROR) from exc

    json_reporter = JSONReporter()
    if report_file is not None:
        json_reporter.generate(report_file, result=result, branch=branch)

    if ci_mode:
        click.echo(json_reporter.generate_string(result=result, branch=branch))
    else:
        reporter.print_test_run(result)

    if not result.success:
        raise SystemExit(EXIT_GATE_FAILED)


# ── detect ───────────────────────────────────────────────────────


@cli.command("detect")
@_path_option
@click.option("--json-output", "as_json", is_flag=True, help="Output as JSON.")
def detect_command(path: str, *, as_json: bool) -> None:
    """List the testable workspaces of a project and their coverage commands."""
    detector = WorkspaceDetector()
    task = TaskInput(task_type="detect_workspaces", target=path)
    output = asyncio.run(detector.run(task))
    if not output.succeeded:
        for error in output.errors:
            reporter.print_error(error)
        raise SystemExit(EXIT_CONFIG_ERROR)

    workspaces = output.result["workspaces"]

    if _ci_mode(as_json=as_json):
        click.echo(JSONReporter().workspaces_string(workspaces))
    else:
        reporter.print_workspaces(workspaces)


# ── config ───────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Inspect `.branchgate.yml` configuration."""


@config_group.command("show")
@_path_option
@click.option("--json-output", "as_json", is_flag=True, help="Output as JSON instead of YAML.")
def config_show(path: str, *, as_json: bool) -> None:
    """Display the resolved configuration, defaults included."""
    try:
        config = load_config(path)
    except ConfigError as exc:
        reporter.print_error(f"Failed to load configuration: {exc}")
        raise SystemExit(EXIT_CONFIG_ERROR) from exc

    config_dict = config.to_dict()
    if _ci_mode(as_json=as_json):
        click.echo(json.dumps(config_dict, indent=2))
    else:
        console.print()
        console.print("[bold cyan]Configuration:[/bold cyan]")
        console.print()
        click.echo(yaml.safe_dump(config_dict, sort_keys=False, default_flow_style=False))


@config_group.command("validate")
@_path_option
def config_validate(path: str) -> None:
    """Validate `.branchgate.yml`.

    Example:
      branchgate config validate
    """
    _load_valid_config(path)
    reporter.print_success("Configuration is valid!")
