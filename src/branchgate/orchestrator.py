"""Branch test orchestrator.

Runs the coverage command of every testable workspace of a project, parses
the artifacts they produce and gates the branch on aggregate and
changed-file coverage::

    detect → run (concurrently) → parse → gate → record

Structural problems (unknown project, missing project path, no testable
workspace) are raised before any job starts. Everything after that is
recovered and reported through the returned :class:`TestRunResult`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

from branchgate.adapters.coverage.coverage_py_adapter import CoveragePyAdapter
from branchgate.adapters.coverage.istanbul import IstanbulAdapter
from branchgate.agents.analyzers.changed_paths import (
    changed_files_for_workspace,
    resolve_changed_paths,
    workspaces_touched,
)
from branchgate.agents.analyzers.coverage_gate import (
    combine_changed_file_gates,
    evaluate_aggregate,
    evaluate_changed_files_for_workspace,
)
from branchgate.agents.detectors.workspace import detect_workspaces
from branchgate.config import BranchGateConfig
from branchgate.errors import (
    BranchNotFoundError,
    InvalidJobProofError,
    JobNotFoundError,
    NoProjectPathError,
    ProjectNotFoundError,
)
from branchgate.interfaces import BranchRecord, JobSpec
from branchgate.models.options import TestRunOptions
from branchgate.models.test_run import (
    CoverageGateResult,
    JobStatus,
    LogEntry,
    RunStatus,
    TestRunResult,
    WorkspaceRun,
)
from branchgate.utils.git import resolve_git_context

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

    from branchgate.adapters.coverage.base import CoverageAdapter
    from branchgate.agents.detectors.workspace import Workspace
    from branchgate.interfaces import GitHelper, Job, JobRunner, ProjectRecord, ProjectStore
    from branchgate.models.coverage import CoverageTotals, Thresholds, UncoveredLinesEntry
    from branchgate.utils.git import GitContext

    GitContextFactory = Callable[[Path | None], GitContext]

logger = logging.getLogger(__name__)


def _call_hook(hook: Callable[[Any], None] | None, payload: Any) -> None:
    """Invoke a caller-supplied job hook; its failures never affect the run."""
    if hook is None:
        return
    try:
        hook(payload)
    except Exception:
        logger.exception("Job hook %r raised", hook)


def failure_message(branch_name: str) -> str:
    return f"Branch {branch_name} has failing tests"


# ── Recorded job proof helpers ───────────────────────────────────

PROOF_SOURCE_RECORDED_JOBS = "recorded-jobs"
_GENERIC_TEST_JOB = "test-run"
_WORKSPACE_LABELS = ("frontend", "backend")


def is_test_job_type(job_type: str | None) -> bool:
    """``test-run`` or any ``<workspace>:test`` job counts as a test job."""
    if not job_type:
        return False
    return job_type == _GENERIC_TEST_JOB or job_type.endswith(":test")


def _proof_job_ids(*values: Any, job_ids: Iterable[Any]) -> list[str]:
    """Trimmed, non-empty, first-seen-unique job ids."""
    unique: dict[str, None] = {}
    for value in (*values, *job_ids):
        text = str(value).strip() if value is not None else ""
        if text:
            unique.setdefault(text, None)
    return list(unique)


def _workspace_label(job_type: str) -> str:
    lowered = job_type.lower()
    for label in _WORKSPACE_LABELS:
        if lowered.startswith(label):
            return label
    return job_type or _GENERIC_TEST_JOB


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


def _job_duration_ms(job: Job) -> int:
    """Wall time between the job's start and completion; 0 when unknown."""
    started = _parse_timestamp(job.started_at)
    completed = _parse_timestamp(job.completed_at)
    if started is None or completed is None:
        return 0
    try:
        elapsed = (completed - started).total_seconds()
    except TypeError:
        # naive and aware timestamps mixed
        return 0
    return int(elapsed * 1000) if elapsed >= 0 else 0


def _proof_run(job: Job) -> WorkspaceRun:
    return WorkspaceRun(
        workspace=_workspace_label(job.job_type),
        kind=job.job_type,
        status=JobStatus.SUCCEEDED,
        duration_ms=_job_duration_ms(job),
        job_id=job.id,
        command=" ".join([job.spec.command, *job.spec.args]).strip(),
    )


class BranchTestOrchestrator:
    """Runs and gates the tests of one branch of one project.

    Collaborators are injected: *job_runner* spawns workspace commands,
    *store* resolves projects and branches and records results, *git* backs
    changed-path discovery. *git_context_factory* decides whether branch
    diffs are available for a project path; by default it probes the
    repository for ``config.git.base_branch``.
    """

    def __init__(
        self,
        *,
        job_runner: JobRunner,
        store: ProjectStore,
        git: GitHelper,
        config: BranchGateConfig | None = None,
        git_context_factory: GitContextFactory | None = None,
    ) -> None:
        self._job_runner = job_runner
        self._store = store
        self._git = git
        self._config = config or BranchGateConfig()
        self._istanbul = IstanbulAdapter()
        self._coverage_py = CoveragePyAdapter()
        self._git_context_factory = git_context_factory or partial(
            resolve_git_context,
            git=git,
            base_branch=self._config.git.base_branch,
        )

    @property
    def config(self) -> BranchGateConfig:
        return self._config

    async def run_tests_for_branch(
        self,
        project_id: str,
        branch_name: str | None = None,
        options: TestRunOptions | Mapping[str, Any] | None = None,
    ) -> TestRunResult:
        """Run every selected workspace and gate the branch.

        Args:
            project_id: Project to test.
            branch_name: Branch to test; ``None`` selects the current branch.
            options: :class:`TestRunOptions` or the equivalent camelCase
                mapping.

        Raises:
            ProjectNotFoundError: If the store has no such project.
            BranchNotFoundError: If *branch_name* is unknown.
            NoProjectPathError: If the project has no directory on disk.
            NoTestableWorkspaceError: If no workspace marker is found.
        """
        opts = options if isinstance(options, TestRunOptions) else TestRunOptions.from_mapping(options)

        project = self._store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        branch = self._resolve_branch(project_id, branch_name)

        if self._should_simulate(opts):
            result = self._simulated_result(branch, opts)
        else:
            result = await self._run(project, branch, opts)

        self._store.record_test_run(project_id, branch, result)
        logger.info("Branch %s: %s", branch.name, result.status.value)
        return result

    def record_job_proof_for_branch(
        self,
        project_id: str,
        branch_name: str | None,
        job_ids: Iterable[Any] = (),
        *,
        frontend_job_id: str | None = None,
        backend_job_id: str | None = None,
    ) -> TestRunResult:
        """Mark a branch passed on the strength of already finished test jobs.

        Every job must be known to the job runner, belong to *project_id*, be
        a test job and have succeeded. The recorded result carries one
        workspace run per job and no coverage verdict.

        Raises:
            ProjectNotFoundError: If the store has no such project.
            BranchNotFoundError: If *branch_name* is unknown.
            JobNotFoundError: If the runner does not know a job id.
            InvalidJobProofError: If no job id is given, or a job belongs to
                another project, is not a test job or did not succeed.
        """
        if self._store.get_project(project_id) is None:
            raise ProjectNotFoundError(project_id)
        branch = self._resolve_branch(project_id, branch_name)

        candidates = _proof_job_ids(frontend_job_id, backend_job_id, job_ids=job_ids)
        if not candidates:
            raise InvalidJobProofError("Provide at least one completed test job id")

        jobs = [self._proof_job(project_id, job_id) for job_id in candidates]
        result = TestRunResult(
            status=RunStatus.PASSED,
            workspace_runs=[_proof_run(job) for job in jobs],
            proof_source=PROOF_SOURCE_RECORDED_JOBS,
        )
        self._store.record_test_run(project_id, branch, result)
        logger.info("Branch %s proven by %d recorded job(s)", branch.name, len(jobs))
        return result

    def _proof_job(self, project_id: str, job_id: str) -> Job:
        job = self._job_runner.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.project_id != project_id:
            raise InvalidJobProofError("Test job does not belong to this project")
        if not is_test_job_type(job.job_type):
            raise InvalidJobProofError("Only completed test jobs can prove a branch")
        if job.status is not JobStatus.SUCCEEDED:
            raise InvalidJobProofError(f"Job {job_id} has not completed successfully")
        return job

    # ── Setup ────────────────────────────────────────────────────

    def _resolve_branch(self, project_id: str, branch_name: str | None) -> BranchRecord:
        if branch_name:
            branch = self._store.get_branch(project_id, branch_name)
            if branch is None:
                raise BranchNotFoundError(branch_name)
            return branch

        branch = self._store.get_current_branch(project_id)
        if branch is None:
            base = self._config.git.base_branch
            logger.info("No current branch recorded for %s, using %s", project_id, base)
            branch = BranchRecord(name=base, id=base, is_current=True)
        return branch

    def _adapter_for(self, workspace: Workspace) -> CoverageAdapter:
        return self._istanbul if workspace.kind.is_node else self._coverage_py

    def _should_simulate(self, opts: TestRunOptions) -> bool:
        return opts.force_fail or (self._config.execution.simulate and not opts.real)

    def _simulated_result(self, branch: BranchRecord, opts: TestRunOptions) -> TestRunResult:
        logger.info("Simulating test run for branch %s (force_fail=%s)", branch.name, opts.force_fail)
        if opts.force_fail:
            return TestRunResult(
                status=RunStatus.FAILED,
                error=failure_message(branch.name),
                simulated=True,
            )
        return TestRunResult(status=RunStatus.PASSED, simulated=True)

    @staticmethod
    def _project_path(project: ProjectRecord) -> Path:
        if not project.path:
            raise NoProjectPathError
        path = Path(project.path)
        if not path.is_dir():
            raise NoProjectPathError
        return path.resolve()

    @staticmethod
    def _select_workspaces(
        workspaces: list[Workspace],
        changed: Sequence[str],
        scope: str,
    ) -> list[Workspace]:
        """Narrow *workspaces* to those touched by *changed* in ``changed`` scope."""
        if scope != "changed" or len(workspaces) < 2 or not changed:
            return workspaces
        touched = workspaces_touched(changed, (ws.name for ws in workspaces))
        if touched is None:
            logger.debug("Changed paths outside every workspace, running all workspaces")
            return workspaces
        return [ws for ws in workspaces if ws.name in touched]

    # ── Execution ────────────────────────────────────────────────

    async def _run(
        self,
        project: ProjectRecord,
        branch: BranchRecord,
        opts: TestRunOptions,
    ) -> TestRunResult:
        project_path = self._project_path(project)
        workspaces = detect_workspaces(project_path)

        coverage_config = self._config.coverage
        thresholds = coverage_config.thresholds.merged(opts.coverage_thresholds)
        changed_thresholds = coverage_config.changed_file_thresholds.merged(
            opts.changed_file_coverage_thresholds
        )
        enforce = (
            opts.enforce_changed_file_coverage
            if opts.enforce_changed_file_coverage is not None
            else coverage_config.enforce_changed_files
        )

        git_context = self._git_context_factory(project_path)
        changed = resolve_changed_paths(opts, git_context, branch, git=self._git)
        selected = self._select_workspaces(workspaces, changed, opts.workspace_scope)
        logger.info(
            "Running %d workspace(s) for branch %s: %s",
            len(selected),
            branch.name,
            ", ".join(ws.kind.value for ws in selected),
        )

        semaphore = asyncio.Semaphore(max(1, self._config.execution.max_concurrency))
        outcomes = await asyncio.gather(
            *(self._run_workspace(ws, project.id, opts, semaphore) for ws in selected)
        )
        runs = [run for run, _ in outcomes]
        node_totals = {
            ws.name: totals
            for ws, (_, totals) in zip(selected, outcomes, strict=True)
            if ws.kind.is_node
        }

        node_names = [ws.name for ws in workspaces if ws.kind.is_node]
        gate = self._evaluate_coverage(
            [ws for ws in selected if ws.kind.is_node],
            node_totals,
            node_names,
            [ws.name for ws in workspaces],
            changed,
            thresholds=thresholds,
            changed_thresholds=changed_thresholds,
            enforce=enforce,
            include_all_lines=opts.include_coverage_line_refs,
        )

        any_failed = any(not run.succeeded for run in runs)
        passed = not any_failed and gate.passed and gate.changed_files.passed
        return TestRunResult(
            status=RunStatus.PASSED if passed else RunStatus.FAILED,
            workspace_runs=runs,
            coverage=gate,
            error=None if passed else failure_message(branch.name),
        )

    async def _run_workspace(
        self,
        workspace: Workspace,
        project_id: str,
        opts: TestRunOptions,
        semaphore: asyncio.Semaphore,
    ) -> tuple[WorkspaceRun, CoverageTotals | None]:
        """Run one workspace's coverage command and read its artifact."""
        command = workspace.test_command
        async with semaphore:
            started = time.perf_counter()
            status = JobStatus.UNKNOWN
            exit_code: int | None = None
            logs: list[LogEntry] = []

            if command is None:
                logger.warning("Workspace %s has no test command", workspace.name)
                status = JobStatus.FAILED
            else:
                spec = JobSpec(
                    command=command.program,
                    args=command.args,
                    cwd=workspace.directory,
                    display_name=f"{workspace.name} tests (coverage)",
                    job_type=f"{workspace.name}:test",
                    project_id=project_id,
                )
                try:
                    job = self._job_runner.start_job(spec)
                    _call_hook(opts.on_job_started, job)
                    completion = await self._job_runner.wait_for_job_completion(job.id)
                    _call_hook(opts.on_job_completed, completion)
                except Exception as exc:
                    logger.exception("Job for workspace %s failed to run", workspace.name)
                    status = JobStatus.FAILED
                    logs = [
                        LogEntry(
                            stream="stderr",
                            message=str(exc),
                            timestamp=datetime.now(UTC).isoformat(),
                        )
                    ]
                else:
                    if completion is not None:
                        status = completion.status
                        exit_code = completion.exit_code
                        logs = list(completion.logs)

            duration_ms = int((time.perf_counter() - started) * 1000)

        parsed = self._adapter_for(workspace).parse_coverage_file(workspace.coverage_path)
        totals: CoverageTotals | None = parsed if workspace.kind.is_node else None
        coverage: Any = totals.metric if totals is not None else parsed

        logger.info(
            "Workspace %s finished: %s (exit %s, %dms)",
            workspace.name,
            status.value,
            exit_code,
            duration_ms,
        )
        run = WorkspaceRun(
            workspace=workspace.name,
            kind=workspace.kind.value,
            status=status,
            exit_code=exit_code,
            logs=logs,
            coverage=coverage,
            duration_ms=duration_ms,
        )
        return run, totals

    # ── Gating ───────────────────────────────────────────────────

    def _evaluate_coverage(
        self,
        node_workspaces: list[Workspace],
        node_totals: dict[str, CoverageTotals | None],
        node_names: list[str],
        workspace_names: list[str],
        changed: Sequence[str],
        *,
        thresholds: Thresholds,
        changed_thresholds: Thresholds,
        enforce: bool,
        include_all_lines: bool,
    ) -> CoverageGateResult:
        extensions = self._config.coverage.source_extensions
        aggregate = evaluate_aggregate(
            {name: totals.metric if totals else None for name, totals in node_totals.items()},
            thresholds,
        )

        gates = []
        collected: list[UncoveredLinesEntry] = []
        for workspace in node_workspaces:
            workspace_changed = changed_files_for_workspace(
                changed,
                workspace.name,
                node_names,
                extensions,
                workspace_names=workspace_names,
            )
            gates.append(
                evaluate_changed_files_for_workspace(
                    workspace.name,
                    workspace_changed,
                    node_totals.get(workspace.name),
                    changed_thresholds,
                    enforce=enforce,
                )
            )

            final_path = workspace.coverage_final_path
            if final_path is None or not (include_all_lines or workspace_changed):
                continue
            entries = self._istanbul.extract_uncovered_lines(
                final_path,
                workspace_changed,
                workspace.name,
                workspace_dir=workspace.directory,
                include_all=include_all_lines,
            )
            if entries:
                collected.extend(entries)

        changed_gate = combine_changed_file_gates(gates, changed_thresholds)
        return CoverageGateResult(
            passed=aggregate.passed,
            thresholds=thresholds,
            changed_files=changed_gate,
            missing=aggregate.missing,
            totals=aggregate.totals,
            uncovered_lines=collected or None,
            failed_dimension=aggregate.failed_dimension,
        )
