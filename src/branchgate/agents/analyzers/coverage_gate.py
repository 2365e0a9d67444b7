"""Coverage gate evaluation.

Pure functions over the normalized coverage model: aggregate thresholds
across Node workspaces and per-changed-file thresholds per workspace. An
absent or non-finite metric always fails; nothing here raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from branchgate.adapters.coverage.base import resolve_coverage_entry
from branchgate.models.coverage import DIMENSIONS, CoverageMetric, is_finite, min_metric
from branchgate.models.test_run import ChangedFileGateResult, ChangedFileWorkspaceGate

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from branchgate.models.coverage import CoverageTotals, Thresholds

logger = logging.getLogger(__name__)

REASON_DISABLED = "disabled"
REASON_PER_FILE_UNAVAILABLE = "per_file_coverage_unavailable"


@dataclass(frozen=True)
class ThresholdVerdict:
    """Outcome of checking one metric against thresholds."""

    passed: bool
    failed_dimension: str | None = None


@dataclass
class AggregateVerdict:
    """Aggregate coverage outcome across Node workspaces."""

    passed: bool
    totals: CoverageMetric | None = None
    missing: list[str] = field(default_factory=list)
    failed_dimension: str | None = None


def evaluate_thresholds(metric: CoverageMetric | None, thresholds: Thresholds) -> ThresholdVerdict:
    """Check *metric* against *thresholds* dimension by dimension.

    Dimensions are checked in ``lines → statements → functions → branches``
    order and the first failure is reported. A missing metric fails on
    ``lines``.
    """
    if metric is None:
        return ThresholdVerdict(passed=False, failed_dimension=DIMENSIONS[0])
    for dimension in DIMENSIONS:
        value = metric.get(dimension)
        if not is_finite(value) or value < thresholds.get(dimension):  # type: ignore[operator]
            return ThresholdVerdict(passed=False, failed_dimension=dimension)
    return ThresholdVerdict(passed=True)


def evaluate_aggregate(
    node_coverage: Mapping[str, CoverageMetric | None],
    thresholds: Thresholds,
) -> AggregateVerdict:
    """Gate the combined totals of every Node workspace.

    *node_coverage* maps each detected Node workspace name to its summary
    totals (``None`` when no summary was produced). Any workspace without
    totals is reported in ``missing`` and fails the gate. With no Node
    workspaces at all the gate passes with no totals.
    """
    if not node_coverage:
        return AggregateVerdict(passed=True, totals=None, missing=[])

    missing = [name for name, metric in node_coverage.items() if metric is None]
    totals = min_metric([metric for metric in node_coverage.values() if metric is not None])
    verdict = evaluate_thresholds(totals, thresholds)

    if missing:
        logger.info("Coverage summary missing for: %s", ", ".join(missing))

    return AggregateVerdict(
        passed=not missing and verdict.passed,
        totals=totals,
        missing=missing,
        failed_dimension=verdict.failed_dimension,
    )


def evaluate_changed_files_for_workspace(
    workspace: str,
    changed_files: Sequence[str],
    totals: CoverageTotals | None,
    thresholds: Thresholds,
    *,
    enforce: bool = True,
) -> ChangedFileWorkspaceGate:
    """Gate the changed source files of one Node workspace.

    *changed_files* are workspace-relative paths already filtered to source
    files. Files absent from the summary, or whose metrics are incomplete,
    are reported in ``missing`` as ``{workspace}/{file}``. Resolved files
    below threshold fail the gate through ``totals``.
    """
    if not enforce:
        return ChangedFileWorkspaceGate(
            workspace=workspace,
            thresholds=thresholds,
            passed=True,
            skipped=True,
            reason=REASON_DISABLED,
        )

    per_file = totals.per_file if totals is not None else None
    if per_file is None:
        return ChangedFileWorkspaceGate(
            workspace=workspace,
            thresholds=thresholds,
            passed=True,
            skipped=True,
            reason=REASON_PER_FILE_UNAVAILABLE,
        )

    if not changed_files:
        return ChangedFileWorkspaceGate(workspace=workspace, thresholds=thresholds, passed=True)

    missing: list[str] = []
    resolved: list[CoverageMetric] = []
    for relative in changed_files:
        metric = resolve_coverage_entry(per_file, relative)
        if metric is None or not metric.is_complete:
            missing.append(f"{workspace}/{relative}")
            continue
        resolved.append(metric)

    file_totals = min_metric(resolved)
    verdict = evaluate_thresholds(file_totals, thresholds)
    passed = not missing and verdict.passed
    logger.debug(
        "Changed-file gate for %s: %d files, %d missing, passed=%s",
        workspace,
        len(changed_files),
        len(missing),
        passed,
    )
    return ChangedFileWorkspaceGate(
        workspace=workspace,
        thresholds=thresholds,
        passed=passed,
        missing=missing,
        totals=file_totals,
    )


def combine_changed_file_gates(
    gates: Sequence[ChangedFileWorkspaceGate],
    thresholds: Thresholds,
) -> ChangedFileGateResult:
    """Merge per-workspace changed-file verdicts into one result."""
    active = [gate for gate in gates if not gate.skipped]
    missing = [entry for gate in gates for entry in gate.missing]
    totals = min_metric([gate.totals for gate in gates if gate.totals is not None])
    return ChangedFileGateResult(
        passed=all(gate.passed for gate in active),
        thresholds=thresholds,
        missing=missing,
        totals=totals,
        workspaces=list(gates),
    )
