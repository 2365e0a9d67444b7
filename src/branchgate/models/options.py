"""Per-call options for a branch test run."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from branchgate.interfaces import Job, JobCompletion

WORKSPACE_SCOPES = ("all", "changed")


def _as_path_list(value: Any) -> list[Any] | None:
    if value is None:
        return None
    if isinstance(value, list | tuple):
        return list(value)
    return None


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    return bool(value)


@dataclass
class TestRunOptions:
    """Options recognized by ``run_tests_for_branch``.

    Threshold overrides are partial mappings; dimensions they omit keep the
    configured value.
    """

    __test__ = False

    real: bool = False
    """Run real jobs even when simulation is enabled."""

    changed_files: list[Any] | None = None
    changed_paths: list[Any] | None = None
    """Alias of :attr:`changed_files`; both lists are merged."""

    coverage_thresholds: dict[str, Any] | None = None
    changed_file_coverage_thresholds: dict[str, Any] | None = None
    enforce_changed_file_coverage: bool | None = None
    """``None`` defers to configuration."""

    include_coverage_line_refs: bool = False
    """Report uncovered lines for every file in ``coverage-final.json``."""

    workspace_scope: str = "all"
    force_fail: bool = False

    on_job_started: Callable[[Job], None] | None = None
    on_job_completed: Callable[[JobCompletion | None], None] | None = None

    @property
    def has_explicit_changes(self) -> bool:
        return self.changed_files is not None or self.changed_paths is not None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> TestRunOptions:
        """Build options from the camelCase mapping API callers send."""
        if not data:
            return cls()
        scope = data.get("workspaceScope", "all")
        return cls(
            real=_as_bool(data.get("real"), default=False),
            changed_files=_as_path_list(data.get("changedFiles")),
            changed_paths=_as_path_list(data.get("changedPaths")),
            coverage_thresholds=(
                dict(data["coverageThresholds"])
                if isinstance(data.get("coverageThresholds"), dict)
                else None
            ),
            changed_file_coverage_thresholds=(
                dict(data["changedFileCoverageThresholds"])
                if isinstance(data.get("changedFileCoverageThresholds"), dict)
                else None
            ),
            enforce_changed_file_coverage=(
                bool(data["enforceChangedFileCoverage"])
                if data.get("enforceChangedFileCoverage") is not None
                else None
            ),
            include_coverage_line_refs=_as_bool(
                data.get("includeCoverageLineRefs"), default=False
            ),
            workspace_scope=scope if scope in WORKSPACE_SCOPES else "all",
            force_fail=_as_bool(data.get("forceFail"), default=False),
        )
