"""Analyzers that turn coverage artifacts and branch changes into gate verdicts."""

from branchgate.agents.analyzers.changed_paths import (
    DEFAULT_SOURCE_EXTENSIONS,
    changed_files_for_workspace,
    is_relevant_source_file,
    resolve_changed_paths,
)
from branchgate.agents.analyzers.coverage_gate import (
    AggregateVerdict,
    ThresholdVerdict,
    combine_changed_file_gates,
    evaluate_aggregate,
    evaluate_changed_files_for_workspace,
    evaluate_thresholds,
)

__all__ = [
    "DEFAULT_SOURCE_EXTENSIONS",
    "AggregateVerdict",
    "ThresholdVerdict",
    "changed_files_for_workspace",
    "combine_changed_file_gates",
    "evaluate_aggregate",
    "evaluate_changed_files_for_workspace",
    "evaluate_thresholds",
    "is_relevant_source_file",
    "resolve_changed_paths",
]
