"""Istanbul coverage adapter for Node workspaces.

Reads the two Istanbul artifacts Jest, Vitest and c8 write under
``coverage/``:

- ``coverage-summary.json`` (``json-summary`` reporter) for aggregate and
  per-file percentages,
- ``coverage-final.json`` (``json`` reporter) for per-statement hit counts,
  used to list uncovered line numbers.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any

from branchgate.adapters.coverage.base import (
    CoverageAdapter,
    index_object_entries,
    read_json_artifact,
    resolve_coverage_entry,
)
from branchgate.models.coverage import CoverageMetric, CoverageTotals, UncoveredLinesEntry
from branchgate.utils.paths import normalize_relative_path, strip_directory_prefix

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

_TOTAL_KEY = "total"

# Longest statement range expanded into line numbers; longer ranges are
# clamped. Real statements never come close, malformed artifacts can.
MAX_STATEMENT_SPAN = 10_000


class LineDataKind(Enum):
    """Shape of the line data carried by one ``coverage-final.json`` entry."""

    LINE_MAP = "l"
    """``{"l": {line: hits}}``."""

    STATEMENT_MAP = "statementMap"
    """``{"statementMap": {id: {start, end}}, "s": {id: hits}}``."""

    UNUSABLE = "unusable"


# ── Summary parsing ──────────────────────────────────────────────


def parse_node_summary(path: Path) -> CoverageTotals | None:
    """Parse ``coverage-summary.json`` into :class:`CoverageTotals`.

    Istanbul summary format::

        {
          "total": {"lines": {"pct": 91.2}, "statements": {...}, ...},
          "/abs/path/src/App.jsx": {"lines": {"pct": 80}, ...}
        }

    Missing metric objects leave the matching field ``None``. Returns ``None``
    when the file is missing, malformed or has no ``total`` object.
    """
    data = read_json_artifact(path)
    if not isinstance(data, dict):
        return None

    total = data.get(_TOTAL_KEY)
    if not isinstance(total, dict):
        logger.warning("Coverage summary %s has no 'total' entry", path)
        return None

    per_file = {
        key: CoverageMetric.from_istanbul(entry)
        for key, entry in index_object_entries(data, skip=frozenset({_TOTAL_KEY})).items()
    }

    return CoverageTotals(
        metric=CoverageMetric.from_istanbul(total),
        per_file=per_file or None,
    )


# ── Uncovered line extraction ────────────────────────────────────


def _is_zero_hit(value: Any) -> bool:
    """Return True for a hit count that means "never executed"."""
    if value is None or value is False:
        return True
    if isinstance(value, int | float):
        return value == 0
    if isinstance(value, str):
        try:
            return float(value or 0) == 0
        except ValueError:
            return False
    return False


def _line_number(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _classify_line_data(entry: dict[str, Any]) -> LineDataKind:
    if isinstance(entry.get("l"), dict):
        return LineDataKind.LINE_MAP
    if isinstance(entry.get("statementMap"), dict) and isinstance(entry.get("s"), dict):
        return LineDataKind.STATEMENT_MAP
    return LineDataKind.UNUSABLE


def _lines_from_line_map(entry: dict[str, Any]) -> set[int]:
    lines: set[int] = set()
    for key, count in entry["l"].items():
        line = _line_number(key)
        if line is not None and _is_zero_hit(count):
            lines.add(line)
    return lines


def _lines_from_statement_map(entry: dict[str, Any]) -> set[int]:
    statement_map: dict[str, Any] = entry["statementMap"]
    counts: dict[str, Any] = entry["s"]
    lines: set[int] = set()
    for stmt_id, location in statement_map.items():
        if not _is_zero_hit(counts.get(stmt_id)) or not isinstance(location, dict):
            continue
        start = location.get("start")
        end = location.get("end")
        start_line = _line_number(start.get("line")) if isinstance(start, dict) else None
        end_line = _line_number(end.get("line")) if isinstance(end, dict) else None
        if start_line is None or end_line is None:
            continue
        last_line = min(max(start_line, end_line), start_line + MAX_STATEMENT_SPAN)
        lines.update(range(start_line, last_line + 1))
    return lines


def uncovered_lines_for_entry(entry: Any) -> list[int] | None:
    """Uncovered line numbers of one ``coverage-final.json`` entry.

    Returns an ascending, deduplicated list, or ``None`` when the entry has
    neither an ``l`` map nor a ``statementMap`` + ``s`` pair ("no data" as
    opposed to "fully covered").
    """
    if not isinstance(entry, dict):
        return None

    kind = _classify_line_data(entry)
    if kind is LineDataKind.LINE_MAP:
        return sorted(_lines_from_line_map(entry))
    if kind is LineDataKind.STATEMENT_MAP:
        return sorted(_lines_from_statement_map(entry))
    return None


def extract_uncovered_lines(
    final_json_path: Path,
    target_files: Iterable[str],
    workspace: str,
    *,
    workspace_dir: Path | None = None,
    include_all: bool = False,
) -> list[UncoveredLinesEntry] | None:
    """Collect uncovered lines from ``coverage-final.json``.

    Args:
        final_json_path: Path to the Istanbul ``coverage-final.json``.
        target_files: Workspace-relative paths to look up (exact match first,
            then suffix match).
        workspace: Workspace name stamped on every entry.
        workspace_dir: Directory used to relativize keys in include-all mode.
        include_all: Report every entry with usable line data instead of only
            *target_files*, including files with no uncovered lines.

    Returns:
        Entries in target (or artifact) order, or ``None`` when the artifact
        is unusable or no requested file resolves to usable data.
    """
    data = read_json_artifact(final_json_path)
    if not isinstance(data, dict):
        return None

    entries = index_object_entries(data)
    results: list[UncoveredLinesEntry] = []
    resolved_any = False

    if include_all:
        for key, entry in entries.items():
            lines = uncovered_lines_for_entry(entry)
            if lines is None:
                continue
            resolved_any = True
            relative = (
                strip_directory_prefix(key, str(workspace_dir))
                if workspace_dir is not None
                else normalize_relative_path(key)
            )
            results.append(UncoveredLinesEntry(workspace=workspace, file=relative, lines=lines))
    else:
        seen: set[str] = set()
        for target in target_files:
            relative = normalize_relative_path(target)
            if not relative or relative in seen:
                continue
            seen.add(relative)
            lines = uncovered_lines_for_entry(resolve_coverage_entry(entries, relative))
            if lines is None:
                continue
            resolved_any = True
            if lines:
                results.append(UncoveredLinesEntry(workspace=workspace, file=relative, lines=lines))

    if not resolved_any:
        logger.debug("No coverage-final entries resolved for workspace %s", workspace)
        return None
    return results


# ── Adapter ──────────────────────────────────────────────────────


class IstanbulAdapter(CoverageAdapter):
    """Istanbul adapter for Node (JavaScript/TypeScript) workspaces."""

    @property
    def name(self) -> str:
        return "istanbul"

    @property
    def language(self) -> str:
        return "javascript"

    def parse_coverage_file(self, coverage_file: Path) -> CoverageTotals | None:
        return parse_node_summary(coverage_file)

    def extract_uncovered_lines(
        self,
        final_json_path: Path,
        target_files: Iterable[str],
        workspace: str,
        *,
        workspace_dir: Path | None = None,
        include_all: bool = False,
    ) -> list[UncoveredLinesEntry] | None:
        return extract_uncovered_lines(
            final_json_path,
            target_files,
            workspace,
            workspace_dir=workspace_dir,
            include_all=include_all,
        )
