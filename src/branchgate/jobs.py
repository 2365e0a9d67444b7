"""In-process job runner backed by asyncio subprocesses."""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from branchgate.interfaces import Job, JobCompletion, JobRunner
from branchgate.models.test_run import JobStatus, LogEntry
from branchgate.utils.subprocess_runner import SubprocessError, run_subprocess

if TYPE_CHECKING:
    from branchgate.interfaces import JobSpec
    from branchgate.utils.subprocess_runner import SubprocessResult

logger = logging.getLogger(__name__)

DEFAULT_JOB_TIMEOUT = 600.0


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _to_log_entries(result: SubprocessResult) -> list[LogEntry]:
    return [
        LogEntry(stream=line.stream, message=line.text, timestamp=line.timestamp)
        for line in result.lines
    ]


class LocalJobRunner(JobRunner):
    """Runs each job as a subprocess on the local machine.

    ``start_job`` must be called from inside a running event loop; the
    subprocess is scheduled as a task and ``wait_for_job_completion`` awaits
    it. Finished jobs stay available through ``get_job``.
    """

    def __init__(self, *, timeout: float = DEFAULT_JOB_TIMEOUT) -> None:
        self._timeout = timeout
        self._tasks: dict[str, asyncio.Task[JobCompletion]] = {}
        self._jobs: dict[str, Job] = {}

    def start_job(self, spec: JobSpec) -> Job:
        job = Job(id=uuid.uuid4().hex, spec=spec, status=JobStatus.RUNNING, started_at=_now())
        self._jobs[job.id] = job
        self._tasks[job.id] = asyncio.get_running_loop().create_task(self._execute(job))
        logger.info("Started job %s: %s", job.id, spec.display_name or spec.command)
        return job

    async def wait_for_job_completion(self, job_id: str) -> JobCompletion | None:
        task = self._tasks.pop(job_id, None)
        if task is None:
            logger.warning("Unknown job id: %s", job_id)
            return None
        return await task

    def get_job(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    async def _execute(self, job: Job) -> JobCompletion:
        completion = await self._run(job)
        job.status = completion.status
        job.completed_at = _now()
        return completion

    async def _run(self, job: Job) -> JobCompletion:
        spec = job.spec
        try:
            result = await run_subprocess(
                [spec.command, *spec.args],
                cwd=spec.cwd,
                timeout=self._timeout,
                env=spec.env or None,
            )
        except (SubprocessError, ValueError) as exc:
            logger.warning("Job %s could not run: %s", job.id, exc)
            logs = _to_log_entries(exc.result) if isinstance(exc, SubprocessError) else []
            return JobCompletion(job_id=job.id, status=JobStatus.FAILED, exit_code=None, logs=logs)

        status = JobStatus.SUCCEEDED if result.success else JobStatus.FAILED
        logger.info(
            "Job %s finished with %s (exit %d, %.0fms)",
            job.id,
            status.value,
            result.returncode,
            result.duration_ms,
        )
        return JobCompletion(
            job_id=job.id,
            status=status,
            exit_code=result.returncode,
            logs=_to_log_entries(result),
        )
