"""Git utilities for branch diffs.

Wraps the handful of ``git`` invocations the gate needs: verifying a
repository, resolving refs, reading the current branch and listing the files
changed between the base branch and a feature branch.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from branchgate.interfaces import GitHelper

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

DEFAULT_BASE_BRANCH = "main"


def _git_executable() -> str:
    """Resolve the full path to the ``git`` executable."""
    return shutil.which("git") or "git"


class GitOperationError(Exception):
    """Exception raised when git operations fail."""


_GIT_REF_MAX_LENGTH = 255
_GIT_REF_UNSAFE = re.compile(r"[\x00-\x1f\x7f \~\^:\?\*\[\]\\;|&$`()<>{}!#'\"]")


def validate_git_ref(ref: str) -> None:
    """Validate a git ref to prevent injection and malformed inputs.

    Raises:
        GitOperationError: If the ref is invalid.
    """
    if not ref:
        raise GitOperationError("Git ref must not be empty")
    if len(ref) > _GIT_REF_MAX_LENGTH:
        raise GitOperationError(f"Git ref exceeds {_GIT_REF_MAX_LENGTH} characters")
    if _GIT_REF_UNSAFE.search(ref):
        raise GitOperationError(f"Git ref contains unsafe characters: {ref!r}")
    if ref.startswith("-"):
        raise GitOperationError("Git ref must not start with a dash")
    if ".." in ref:
        raise GitOperationError("Git ref must not contain '..'")


@dataclass
class GitCommandResult:
    """Captured output of one git invocation."""

    stdout: str
    stderr: str
    code: int

    @property
    def ok(self) -> bool:
        return self.code == 0


def run_git_command(cwd: Path | str, args: Sequence[str]) -> GitCommandResult:
    """Run ``git <args>`` in *cwd* without raising on a non-zero exit.

    Raises:
        GitOperationError: If the git executable cannot be started.
    """
    try:
        result = subprocess.run(  # noqa: S603
            [_git_executable(), *args],
            cwd=cwd,
            capture_output=True,
            text=True,
            check=False,
        )
    except OSError as exc:
        raise GitOperationError(f"Failed to run git {' '.join(args)}: {exc}") from exc
    return GitCommandResult(stdout=result.stdout, stderr=result.stderr, code=result.returncode)


def ensure_git_repository(repo_path: Path | str) -> None:
    """Verify that *repo_path* is inside a git work tree.

    Raises:
        GitOperationError: If it is not, or git is unavailable.
    """
    result = run_git_command(repo_path, ["rev-parse", "--is-inside-work-tree"])
    if not result.ok or result.stdout.strip() != "true":
        raise GitOperationError(f"Not a git repository: {repo_path}")


def ref_exists(repo_path: Path | str, ref: str) -> bool:
    """Return True when *ref* resolves to a commit."""
    validate_git_ref(ref)
    result = run_git_command(repo_path, ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
    return result.ok


def get_current_branch(repo_path: Path | str) -> str:
    """Get the current git branch name.

    Raises:
        GitOperationError: If the operation fails.
    """
    result = run_git_command(repo_path, ["rev-parse", "--abbrev-ref", "HEAD"])
    if not result.ok:
        raise GitOperationError(f"Failed to get current branch: {result.stderr.strip()}")
    return result.stdout.strip()


class SubprocessGitHelper(GitHelper):
    """Default :class:`~branchgate.interfaces.GitHelper` backed by the git CLI."""

    def run_git_command(self, cwd: Path | str, args: Sequence[str]) -> GitCommandResult:
        return run_git_command(cwd, args)

    def ensure_git_repository(self, path: Path | str) -> None:
        ensure_git_repository(path)

    def get_current_branch(self, path: Path | str) -> str:
        return get_current_branch(path)

    def ref_exists(self, path: Path | str, ref: str) -> bool:
        return ref_exists(path, ref)


@dataclass(frozen=True)
class GitContext:
    """Git readiness of one project, resolved once per orchestration call."""

    project_path: Path | None
    git_ready: bool = False
    base_branch: str = DEFAULT_BASE_BRANCH


def resolve_git_context(
    project_path: Path | None,
    *,
    git: GitHelper,
    base_branch: str = DEFAULT_BASE_BRANCH,
) -> GitContext:
    """Probe *project_path* and report whether branch diffs are available.

    Git is ready when the path is a repository and *base_branch* resolves.
    Any failure yields a not-ready context; it is never raised.
    """
    if project_path is None:
        return GitContext(project_path=None, git_ready=False, base_branch=base_branch)

    try:
        git.ensure_git_repository(project_path)
        ready = git.ref_exists(project_path, base_branch)
    except GitOperationError as exc:
        logger.warning("Git unavailable for %s: %s", project_path, exc)
        ready = False
    else:
        if not ready:
            logger.warning("Base branch %s not found in %s", base_branch, project_path)

    return GitContext(project_path=project_path, git_ready=ready, base_branch=base_branch)


def list_branch_changed_paths(
    context: GitContext,
    branch_ref: str | None,
    *,
    git: GitHelper,
) -> list[str]:
    """List paths changed between ``context.base_branch`` and *branch_ref*.

    Runs ``git diff --name-only <base>..<branch>``. Returns an empty list when
    git is not ready or either ref is blank.

    Raises:
        GitOperationError: If a ref is unsafe or the diff command fails.
    """
    if not context.git_ready or context.project_path is None:
        return []

    base = (context.base_branch or "").strip()
    branch = (branch_ref or "").strip()
    if not base or not branch:
        return []

    validate_git_ref(base)
    validate_git_ref(branch)

    result = git.run_git_command(context.project_path, ["diff", "--name-only", f"{base}..{branch}"])
    if not result.ok:
        raise GitOperationError(
            f"git diff {base}..{branch} failed with code {result.code}: {result.stderr.strip()}"
        )

    return [line.strip() for line in result.stdout.splitlines() if line.strip()]
