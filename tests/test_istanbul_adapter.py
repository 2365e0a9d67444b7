"""Tests for the Istanbul coverage adapter (adapters/coverage/istanbul.py).

Covers ``coverage-summary.json`` parsing, entry lookup precedence and
uncovered-line extraction from both ``coverage-final.json`` line-data shapes.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from branchgate.adapters.coverage.base import resolve_coverage_entry
from branchgate.adapters.coverage.istanbul import (
    IstanbulAdapter,
    MAX_STATEMENT_SPAN,
    extract_uncovered_lines,
    parse_node_summary,
    uncovered_lines_for_entry,
)
from branchgate.models.coverage import CoverageMetric, UncoveredLinesEntry

if TYPE_CHECKING:
    from pathlib import Path

# ── Helpers ──────────────────────────────────────────────────────


def _write_file(root: Path, rel: str, content: str) -> Path:
    f = root / rel
    f.parent.mkdir(parents=True, exist_ok=True)
    f.write_text(content, encoding="utf-8")
    return f


def _write_json(root: Path, rel: str, data: object) -> Path:
    """Write JSON data to a file under *root*."""
    return _write_file(root, rel, json.dumps(data, indent=2))


def _pct(lines: float, statements: float, functions: float, branches: float) -> dict[str, object]:
    return {
        "lines": {"total": 10, "covered": 10, "pct": lines},
        "statements": {"total": 10, "covered": 10, "pct": statements},
        "functions": {"total": 2, "covered": 2, "pct": functions},
        "branches": {"total": 4, "covered": 4, "pct": branches},
    }


def _stmt(start: int | None, end: int | None) -> dict[str, object]:
    loc: dict[str, object] = {}
    loc["start"] = {"line": start, "column": 0} if start is not None else {"column": 0}
    loc["end"] = {"line": end, "column": 10} if end is not None else {"column": 10}
    return loc


# ── Summary parsing ──────────────────────────────────────────────


class TestParseNodeSummary:
    def test_total_and_per_file(self, tmp_path: Path) -> None:
        path = _write_json(
            tmp_path,
            "coverage/coverage-summary.json",
            {
                "total": _pct(91.5, 90, 80, 75),
                "/repo/frontend/src/App.jsx": _pct(100, 100, 100, 100),
                "/repo/frontend/src/util.js": _pct(50, 50, 0, 25),
            },
        )

        totals = parse_node_summary(path)

        assert totals is not None
        assert totals.metric == CoverageMetric(91.5, 90.0, 80.0, 75.0)
        assert totals.per_file is not None
        assert set(totals.per_file) == {"/repo/frontend/src/App.jsx", "/repo/frontend/src/util.js"}
        assert totals.per_file["/repo/frontend/src/util.js"].functions == 0.0

    def test_total_only_has_no_per_file(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path, "summary.json", {"total": _pct(100, 100, 100, 100)})

        totals = parse_node_summary(path)

        assert totals is not None
        assert totals.per_file is None

    def test_missing_metric_objects_are_none(self, tmp_path: Path) -> None:
        path = _write_json(
            tmp_path,
            "summary.json",
            {"total": {"lines": {"pct": 80}, "branches": {"pct": "Unknown"}}},
        )

        totals = parse_node_summary(path)

        assert totals is not None
        assert totals.metric == CoverageMetric(lines=80.0)
        assert not totals.metric.is_complete

    def test_non_object_per_file_values_ignored(self, tmp_path: Path) -> None:
        path = _write_json(
            tmp_path,
            "summary.json",
            {"total": _pct(100, 100, 100, 100), "src/a.js": 5, "src/b.js": None},
        )

        totals = parse_node_summary(path)

        assert totals is not None
        assert totals.per_file is None

    def test_missing_file(self, tmp_path: Path) -> None:
        assert parse_node_summary(tmp_path / "nope.json") is None

    def test_malformed_json(self, tmp_path: Path) -> None:
        path = _write_file(tmp_path, "summary.json", "{broken")

        assert parse_node_summary(path) is None

    def test_non_object_root(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path, "summary.json", [1, 2, 3])

        assert parse_node_summary(path) is None

    def test_missing_total(self, tmp_path: Path) -> None:
        path = _write_json(tmp_path, "summary.json", {"src/a.js": _pct(1, 1, 1, 1)})

        assert parse_node_summary(path) is None


# ── Entry lookup ─────────────────────────────────────────────────


class TestResolveCoverageEntry:
    def test_exact_match(self) -> None:
        entries = {"src/foo.js": "exact"}

        assert resolve_coverage_entry(entries, "src/foo.js") == "exact"

    def test_suffix_match(self) -> None:
        entries = {"/abs/repo/frontend/src/foo.js": "abs"}

        assert resolve_coverage_entry(entries, "src/foo.js") == "abs"

    def test_exact_beats_suffix_regardless_of_order(self) -> None:
        entries = {"/abs/repo/src/foo.js": "suffix", "src/foo.js": "exact"}

        assert resolve_coverage_entry(entries, "src/foo.js") == "exact"

    def test_suffix_requires_path_boundary(self) -> None:
        entries = {"/repo/src/barfoo.js": "wrong"}

        assert resolve_coverage_entry(entries, "foo.js") is None

    def test_normalizes_requested_path(self) -> None:
        entries = {"src/foo.js": "exact"}

        assert resolve_coverage_entry(entries, "\\src\\foo.js ") == "exact"

    def test_blank_path(self) -> None:
        assert resolve_coverage_entry({"": "x"}, "  ") is None


# ── Uncovered lines ──────────────────────────────────────────────


class TestUncoveredLinesForEntry:
    def test_line_map_zero_hits(self) -> None:
        entry = {"l": {"1": 1, "2": 0, "3": 1, "4": 0}}

        assert uncovered_lines_for_entry(entry) == [2, 4]

    def test_line_map_sorted(self) -> None:
        entry = {"l": {"10": 0, "2": 0, "7": 3}}

        assert uncovered_lines_for_entry(entry) == [2, 10]

    def test_line_map_takes_precedence(self) -> None:
        entry = {
            "l": {"5": 0},
            "statementMap": {"0": _stmt(1, 1)},
            "s": {"0": 0},
        }

        assert uncovered_lines_for_entry(entry) == [5]

    def test_statement_map_expands_ranges(self) -> None:
        entry = {
            "statementMap": {"0": _stmt(3, 5), "1": _stmt(4, 4), "2": _stmt(9, 9)},
            "s": {"0": 0, "1": 0, "2": 2},
        }

        assert uncovered_lines_for_entry(entry) == [3, 4, 5]

    def test_statement_map_long_range_expands_fully(self) -> None:
        entry = {"statementMap": {"0": _stmt(1, 40)}, "s": {"0": 0}}

        assert uncovered_lines_for_entry(entry) == list(range(1, 41))

    def test_runaway_statement_range_is_clamped(self) -> None:
        entry = {"statementMap": {"0": _stmt(3, 5_000_000)}, "s": {"0": 0}}

        lines = uncovered_lines_for_entry(entry)

        assert lines is not None
        assert len(lines) == MAX_STATEMENT_SPAN + 1
        assert lines[0] == 3
        assert lines[-1] == 3 + MAX_STATEMENT_SPAN

    def test_statement_missing_bounds_skipped(self) -> None:
        entry = {
            "statementMap": {"0": _stmt(None, 4), "1": _stmt(6, None), "2": _stmt(8, 8)},
            "s": {"0": 0, "1": 0, "2": 0},
        }

        assert uncovered_lines_for_entry(entry) == [8]

    def test_statement_without_count_is_uncovered(self) -> None:
        entry = {"statementMap": {"0": _stmt(2, 2)}, "s": {}}

        assert uncovered_lines_for_entry(entry) == [2]

    def test_fully_covered_is_empty_not_none(self) -> None:
        entry = {"statementMap": {"0": _stmt(1, 1)}, "s": {"0": 4}}

        assert uncovered_lines_for_entry(entry) == []

    def test_no_line_data(self) -> None:
        assert uncovered_lines_for_entry({"path": "/x.js"}) is None
        assert uncovered_lines_for_entry({"statementMap": {}}) is None
        assert uncovered_lines_for_entry("not an entry") is None

    def test_deterministic(self) -> None:
        entry = {"statementMap": {"0": _stmt(4, 6), "1": _stmt(5, 7)}, "s": {"0": 0, "1": 0}}

        assert uncovered_lines_for_entry(entry) == uncovered_lines_for_entry(entry) == [4, 5, 6, 7]


class TestExtractUncoveredLines:
    def test_changed_file_lookup(self, tmp_path: Path) -> None:
        final = _write_json(
            tmp_path,
            "frontend/coverage/coverage-final.json",
            {"src/foo.js": {"l": {"1": 1, "2": 0, "3": 1, "4": 0}}},
        )

        result = extract_uncovered_lines(final, ["src/foo.js"], "frontend")

        assert result == [UncoveredLinesEntry(workspace="frontend", file="src/foo.js", lines=[2, 4])]

    def test_suffix_lookup_against_absolute_keys(self, tmp_path: Path) -> None:
        final = _write_json(
            tmp_path,
            "coverage-final.json",
            {"/repo/frontend/src/foo.js": {"statementMap": {"0": _stmt(7, 8)}, "s": {"0": 0}}},
        )

        result = extract_uncovered_lines(final, ["src/foo.js"], "frontend")

        assert result is not None
        assert result[0].lines == [7, 8]

    def test_fully_covered_file_omitted_but_result_not_none(self, tmp_path: Path) -> None:
        final = _write_json(tmp_path, "coverage-final.json", {"src/a.js": {"l": {"1": 3}}})

        assert extract_uncovered_lines(final, ["src/a.js"], "root") == []

    def test_unresolved_files_yield_none(self, tmp_path: Path) -> None:
        final = _write_json(tmp_path, "coverage-final.json", {"src/a.js": {"l": {"1": 0}}})

        assert extract_uncovered_lines(final, ["src/missing.js"], "root") is None

    def test_non_object_entries_ignored(self, tmp_path: Path) -> None:
        final = _write_json(tmp_path, "coverage-final.json", {"src/a.js": 3})

        assert extract_uncovered_lines(final, ["src/a.js"], "root") is None

    def test_missing_or_malformed_artifact(self, tmp_path: Path) -> None:
        broken = _write_file(tmp_path, "coverage-final.json", "nope")

        assert extract_uncovered_lines(tmp_path / "absent.json", ["a.js"], "root") is None
        assert extract_uncovered_lines(broken, ["a.js"], "root") is None

    def test_include_all_reports_relative_paths(self, tmp_path: Path) -> None:
        workspace_dir = tmp_path / "frontend"
        final = _write_json(
            tmp_path,
            "frontend/coverage/coverage-final.json",
            {
                f"{workspace_dir}/src/a.js": {"l": {"1": 0, "2": 1}},
                f"{workspace_dir}/src/b.js": {"l": {"1": 1}},
                f"{workspace_dir}/src/c.js": {"path": "no data"},
            },
        )

        result = extract_uncovered_lines(
            final, [], "frontend", workspace_dir=workspace_dir, include_all=True
        )

        assert result == [
            UncoveredLinesEntry(workspace="frontend", file="src/a.js", lines=[1]),
            UncoveredLinesEntry(workspace="frontend", file="src/b.js", lines=[]),
        ]


class TestIstanbulAdapter:
    def test_identity(self) -> None:
        adapter = IstanbulAdapter()

        assert adapter.name == "istanbul"
        assert adapter.language == "javascript"

    def test_delegates(self, tmp_path: Path) -> None:
        summary = _write_json(tmp_path, "s.json", {"total": _pct(1, 2, 3, 4)})
        final = _write_json(tmp_path, "f.json", {"a.js": {"l": {"3": 0}}})
        adapter = IstanbulAdapter()

        totals = adapter.parse_coverage_file(summary)
        lines = adapter.extract_uncovered_lines(final, ["a.js"], "root")

        assert totals is not None
        assert totals.metric.branches == 4.0
        assert lines == [UncoveredLinesEntry(workspace="root", file="a.js", lines=[3])]
