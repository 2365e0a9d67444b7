"""Tests for the coverage.py adapter (adapters/coverage/coverage_py_adapter.py)."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from branchgate.adapters.coverage.coverage_py_adapter import (
    CoveragePyAdapter,
    parse_python_coverage,
    percent_covered,
)

if TYPE_CHECKING:
    from pathlib import Path

_SAMPLE_REPORT = {
    "meta": {"version": "7.4.0", "format": 2},
    "files": {
        "app/main.py": {
            "executed_lines": [1, 2, 3],
            "missing_lines": [7],
            "summary": {"percent_covered": 75.0},
        }
    },
    "totals": {"covered_lines": 3, "num_statements": 4, "percent_covered": 75.0},
}


def test_parse_keeps_payload_raw(tmp_path: Path) -> None:
    path = tmp_path / "coverage.json"
    path.write_text(json.dumps(_SAMPLE_REPORT), encoding="utf-8")

    payload = parse_python_coverage(path)

    assert payload == {"raw": _SAMPLE_REPORT}


def test_missing_file_is_none(tmp_path: Path) -> None:
    assert parse_python_coverage(tmp_path / "coverage.json") is None


def test_malformed_file_is_none(tmp_path: Path) -> None:
    path = tmp_path / "coverage.json"
    path.write_text("{{{", encoding="utf-8")

    assert parse_python_coverage(path) is None


def test_json_null_is_none(tmp_path: Path) -> None:
    path = tmp_path / "coverage.json"
    path.write_text("null", encoding="utf-8")

    assert parse_python_coverage(path) is None


def test_percent_covered() -> None:
    assert percent_covered({"raw": _SAMPLE_REPORT}) == 75.0
    assert percent_covered({"raw": {"totals": {}}}) is None
    assert percent_covered({"raw": [1, 2]}) is None
    assert percent_covered(None) is None


def test_adapter_identity(tmp_path: Path) -> None:
    adapter = CoveragePyAdapter()

    assert adapter.name == "coverage.py"
    assert adapter.language == "python"
    assert adapter.parse_coverage_file(tmp_path / "missing.json") is None
