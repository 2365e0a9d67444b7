"""Exceptions raised by the branch test gate.

Only structural preconditions are raised to callers. Malformed coverage data,
failing jobs and git problems are recovered locally and reported through the
``TestRunResult``.
"""

from __future__ import annotations

_BAD_REQUEST = 400
_NOT_FOUND = 404


class BranchGateError(Exception):
    """Base error carrying an HTTP-style status code for the API layer."""

    def __init__(self, message: str, status_code: int = _BAD_REQUEST) -> None:
        super().__init__(message)
        self.status_code = status_code


class NoTestableWorkspaceError(BranchGateError):
    """No ``package.json`` or ``requirements.txt`` workspace marker was found."""

    def __init__(
        self,
        message: str = "Test runner not configured (no package.json or requirements.txt found)",
    ) -> None:
        super().__init__(message, _BAD_REQUEST)


class NoProjectPathError(BranchGateError):
    """The project record has no resolvable filesystem path."""

    def __init__(self, message: str = "Project path not found") -> None:
        super().__init__(message, _BAD_REQUEST)


class ProjectNotFoundError(BranchGateError):
    """The requested project does not exist in the store."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project not found: {project_id}", _NOT_FOUND)
        self.project_id = project_id


class BranchNotFoundError(BranchGateError):
    """The requested branch does not exist in the store."""

    def __init__(self, branch_name: str) -> None:
        super().__init__(f"Branch not found: {branch_name}", _NOT_FOUND)
        self.branch_name = branch_name


class JobNotFoundError(BranchGateError):
    """A job id offered as branch proof is unknown to the job runner."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found", _NOT_FOUND)
        self.job_id = job_id


class InvalidJobProofError(BranchGateError):
    """Recorded jobs cannot prove a branch (wrong project, type or status)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, _BAD_REQUEST)
