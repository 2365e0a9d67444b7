"""Changed-path resolution for a branch.

Determines which files a branch touches and which of them belong to each
Node workspace, so the changed-file gate can look them up in that
workspace's coverage summary.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from branchgate.utils.git import GitOperationError, list_branch_changed_paths
from branchgate.utils.paths import normalize_relative_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from branchgate.interfaces import BranchRecord, GitHelper
    from branchgate.models.options import TestRunOptions
    from branchgate.utils.git import GitContext

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_EXTENSIONS: tuple[str, ...] = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".py")


def _unique_normalized(values: Iterable[Any]) -> list[str]:
    """Normalize *values*, drop blanks and keep the first occurrence of each."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        path = normalize_relative_path(value)
        if path and path not in seen:
            seen.add(path)
            result.append(path)
    return result


def _explicit_paths(options: TestRunOptions) -> list[str]:
    if not options.has_explicit_changes:
        return []
    return _unique_normalized([*(options.changed_files or []), *(options.changed_paths or [])])


def _git_paths(
    git_context: GitContext,
    branch: BranchRecord | None,
    git: GitHelper,
) -> list[str]:
    if branch is None or not git_context.git_ready:
        return []
    try:
        return _unique_normalized(list_branch_changed_paths(git_context, branch.name, git=git))
    except GitOperationError as exc:
        logger.warning("Could not diff branch %s: %s", branch.name, exc)
        return []


def resolve_changed_paths(
    options: TestRunOptions,
    git_context: GitContext,
    branch: BranchRecord | None,
    *,
    git: GitHelper,
) -> list[str]:
    """Return the branch's changed paths from the first source that has any.

    Sources, in order: explicit ``changed_files``/``changed_paths`` options
    (merged), ``git diff --name-only <base>..<branch>`` when git is ready,
    then the branch's persisted staged files.
    """
    explicit = _explicit_paths(options)
    if explicit:
        logger.debug("Using %d explicitly provided changed paths", len(explicit))
        return explicit

    from_git = _git_paths(git_context, branch, git)
    if from_git:
        logger.debug("Using %d changed paths from git diff", len(from_git))
        return from_git

    staged = _unique_normalized(branch.staged_paths()) if branch is not None else []
    if staged:
        logger.debug("Using %d staged paths from branch record", len(staged))
    return staged


def is_relevant_source_file(
    path: str,
    extensions: Sequence[str] = DEFAULT_SOURCE_EXTENSIONS,
) -> bool:
    """Return True when *path* ends with one of *extensions* (case-insensitive)."""
    lowered = path.lower()
    return any(lowered.endswith(ext.lower()) for ext in extensions)


def changed_files_for_workspace(
    changed: Iterable[str],
    workspace_name: str,
    node_workspace_names: Sequence[str],
    extensions: Sequence[str] = DEFAULT_SOURCE_EXTENSIONS,
    *,
    workspace_names: Sequence[str] = (),
) -> list[str]:
    """Attribute *changed* paths to *workspace_name*, relative to it.

    Paths prefixed with ``{workspace_name}/`` lose the prefix. When only one
    Node workspace exists, un-prefixed paths are attributed to it as well,
    except paths under another detected workspace listed in *workspace_names*
    (a ``backend/`` Python workspace next to a ``frontend/`` Node one).
    Non-source files are dropped after attribution.
    """
    prefix = f"{workspace_name}/"
    single_workspace = len(node_workspace_names) == 1
    foreign = {name for name in workspace_names if name != workspace_name}
    attributed: list[str] = []
    for raw in changed:
        path = normalize_relative_path(raw)
        if not path:
            continue
        if path.startswith(prefix):
            path = path[len(prefix) :]
        elif not single_workspace:
            continue
        else:
            head, sep, _ = path.partition("/")
            if sep and head in foreign:
                continue
        if path and is_relevant_source_file(path, extensions):
            attributed.append(path)
    return _unique_normalized(attributed)


def workspaces_touched(changed: Iterable[str], workspace_names: Iterable[str]) -> set[str] | None:
    """Workspace names referenced by *changed*.

    Returns ``None`` when any path lies outside every workspace, meaning the
    change cannot be scoped to a subset of workspaces.
    """
    names = set(workspace_names)
    touched: set[str] = set()
    for raw in changed:
        path = normalize_relative_path(raw)
        if not path:
            continue
        head, sep, _ = path.partition("/")
        if not sep or head not in names:
            return None
        touched.add(head)
    return touched
