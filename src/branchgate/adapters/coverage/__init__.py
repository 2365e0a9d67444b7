"""Coverage artifact adapters."""

from branchgate.adapters.coverage.base import CoverageAdapter, resolve_coverage_entry
from branchgate.adapters.coverage.coverage_py_adapter import CoveragePyAdapter, parse_python_coverage
from branchgate.adapters.coverage.istanbul import (
    IstanbulAdapter,
    LineDataKind,
    extract_uncovered_lines,
    parse_node_summary,
    uncovered_lines_for_entry,
)

__all__ = [
    "CoverageAdapter",
    "CoveragePyAdapter",
    "IstanbulAdapter",
    "LineDataKind",
    "extract_uncovered_lines",
    "parse_node_summary",
    "parse_python_coverage",
    "resolve_coverage_entry",
    "uncovered_lines_for_entry",
]
