"""Debounced automatic test runs.

Hosts call :meth:`AutoTestScheduler.schedule` whenever a branch changes
(files staged, commits made). Only the last call inside the debounce window
starts a run; earlier pending runs for the same project and branch are
cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from branchgate.orchestrator import BranchTestOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.75

ScheduleKey = tuple[str, str]


class AutoTestScheduler:
    """Per ``(project_id, branch)`` debounce in front of the orchestrator.

    Must be used from inside a running event loop. A run that already started
    is not cancelled by a later :meth:`cancel`; only pending ones are.
    """

    def __init__(
        self,
        orchestrator: BranchTestOrchestrator,
        *,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._orchestrator = orchestrator
        self._delay = delay
        self._pending: dict[ScheduleKey, asyncio.Task[None]] = {}
        self._running: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> list[ScheduleKey]:
        """Keys with a run waiting for its debounce delay to elapse."""
        return list(self._pending)

    def schedule(self, project_id: str, branch_name: str | None, delay: float | None = None) -> None:
        """(Re)start the debounce timer for *branch_name*.

        A blank branch name is ignored. A missing or non-finite *delay* uses
        the scheduler default; negative delays run on the next loop turn.
        """
        if not branch_name:
            return
        self.cancel(project_id, branch_name)

        wait = delay if delay is not None and math.isfinite(delay) else self._delay
        key = (project_id, branch_name)
        task = asyncio.get_running_loop().create_task(self._run_after(key, max(wait, 0.0)))
        self._pending[key] = task
        logger.debug("Scheduled automatic test run for %s/%s in %.2fs", *key, max(wait, 0.0))

    def cancel(self, project_id: str, branch_name: str) -> bool:
        """Cancel the pending run for *branch_name*; return whether one existed."""
        task = self._pending.pop((project_id, branch_name), None)
        if task is None:
            return False
        task.cancel()
        logger.debug("Cancelled automatic test run for %s/%s", project_id, branch_name)
        return True

    def cancel_all(self) -> None:
        for project_id, branch_name in list(self._pending):
            self.cancel(project_id, branch_name)

    async def wait_idle(self) -> None:
        """Wait until no run is pending or in progress."""
        while self._pending or self._running:
            await asyncio.gather(
                *self._pending.values(),
                *self._running,
                return_exceptions=True,
            )

    async def _run_after(self, key: ScheduleKey, delay: float) -> None:
        await asyncio.sleep(delay)

        # From here on the run belongs to _running and cancel() no longer reaches it.
        task = asyncio.current_task()
        if task is not None and self._pending.get(key) is task:
            del self._pending[key]
            self._running.add(task)
        project_id, branch_name = key
        try:
            await self._orchestrator.run_tests_for_branch(project_id, branch_name)
        except Exception:
            logger.warning(
                "Automatic test run failed for %s/%s", project_id, branch_name, exc_info=True
            )
        finally:
            if task is not None:
                self._running.discard(task)
