"""Local JSON-file project store.

Persists branch state and test-run results for a single local checkout under
``.branchgate/`` in the project root::

    .branchgate/
      branches.json              # {branch: {"status": ..., "staged_files": [...]}}
      test_runs/<branch>.json    # latest TestRunResult payload per branch
"""

from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from branchgate.interfaces import BranchRecord, ProjectRecord, ProjectStore
from branchgate.utils.git import GitOperationError

if TYPE_CHECKING:
    from branchgate.interfaces import GitHelper
    from branchgate.models.test_run import TestRunResult

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".branchgate"
LOCAL_PROJECT_ID = "local"

BRANCH_STATUS_READY = "ready-for-merge"
BRANCH_STATUS_NEEDS_FIX = "needs-fix"

_UNSAFE_FILENAME = re.compile(r"[^A-Za-z0-9._-]")


class JsonFileStore:
    """One JSON document under the state directory."""

    def __init__(self, project_root: Path, filename: str) -> None:
        self._file_path = project_root / DEFAULT_STATE_DIR / filename

    def save(self, data: dict[str, Any]) -> None:
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        self._file_path.write_text(
            json.dumps(data, indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.debug("Saved %s", self._file_path)

    def load(self) -> dict[str, Any] | None:
        """Load the document, or ``None`` when it is missing or unreadable."""
        if not self._file_path.exists():
            return None
        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error("Failed to load %s: %s", self._file_path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: not a JSON object", self._file_path)
            return None
        return cast("dict[str, Any]", data)

    def update(self, updates: dict[str, Any]) -> None:
        """Shallow-merge *updates* into the stored document."""
        data = self.load() or {}
        data.update(updates)
        self.save(data)

    @property
    def file_path(self) -> Path:
        return self._file_path


def _branch_filename(branch_name: str) -> str:
    return _UNSAFE_FILENAME.sub("_", branch_name.replace("/", "__")) + ".json"


class LocalProjectStore(ProjectStore):
    """:class:`~branchgate.interfaces.ProjectStore` for one local checkout.

    The checkout is exposed as a single project (id ``local`` by default).
    The current branch comes from git; staged files and branch status come
    from ``branches.json``.
    """

    def __init__(
        self,
        project_root: str | Path,
        *,
        git: GitHelper,
        project_id: str = LOCAL_PROJECT_ID,
    ) -> None:
        self._root = Path(project_root).resolve()
        self._git = git
        self._project_id = project_id
        self._branches = JsonFileStore(self._root, "branches.json")

    @property
    def project_id(self) -> str:
        return self._project_id

    def get_project(self, project_id: str) -> ProjectRecord | None:
        if project_id != self._project_id:
            return None
        return ProjectRecord(id=self._project_id, name=self._root.name, path=str(self._root))

    def get_branch(self, project_id: str, branch_name: str) -> BranchRecord | None:
        if project_id != self._project_id or not branch_name:
            return None
        return self._branch_record(branch_name, is_current=branch_name == self._git_branch())

    def get_current_branch(self, project_id: str) -> BranchRecord | None:
        if project_id != self._project_id:
            return None
        name = self._git_branch()
        if not name:
            return None
        return self._branch_record(name, is_current=True)

    def record_test_run(
        self,
        project_id: str,
        branch: BranchRecord,
        result: TestRunResult,
    ) -> None:
        status = BRANCH_STATUS_READY if result.success else BRANCH_STATUS_NEEDS_FIX
        run_store = JsonFileStore(self._root, f"test_runs/{_branch_filename(branch.name)}")
        run_store.save(
            {
                "projectId": project_id,
                "branch": branch.name,
                "recordedAt": datetime.now(UTC).isoformat(),
                "result": result.to_dict(),
            }
        )

        branches = self._branches.load() or {}
        entry = branches.get(branch.name)
        entry = dict(entry) if isinstance(entry, dict) else {}
        entry["status"] = status
        self._branches.update({branch.name: entry})
        branch.status = status
        logger.info("Recorded %s test run for branch %s", result.status.value, branch.name)

    def load_test_run(self, branch_name: str) -> dict[str, Any] | None:
        """Return the last recorded run payload for *branch_name*."""
        return JsonFileStore(self._root, f"test_runs/{_branch_filename(branch_name)}").load()

    def _git_branch(self) -> str | None:
        try:
            name = self._git.get_current_branch(self._root)
        except GitOperationError as exc:
            logger.debug("No current git branch for %s: %s", self._root, exc)
            return None
        return name or None

    def _branch_record(self, name: str, *, is_current: bool) -> BranchRecord:
        stored = (self._branches.load() or {}).get(name)
        stored = stored if isinstance(stored, dict) else {}
        return BranchRecord(
            name=name,
            id=name,
            is_current=is_current,
            staged_files=stored.get("staged_files"),
            status=str(stored.get("status", "active")),
        )
