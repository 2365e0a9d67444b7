"""Coverage.py adapter for Python workspaces.

The pytest-cov JSON report (``--cov-report=json:coverage.json``) is kept as
an opaque payload: it is attached to the workspace run for diagnostics but
is not scored against thresholds.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from branchgate.adapters.coverage.base import CoverageAdapter, read_json_artifact

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def parse_python_coverage(path: Path) -> dict[str, Any] | None:
    """Load ``coverage.json`` as ``{"raw": <parsed JSON>}``.

    Returns ``None`` when the file is missing or malformed, or parses to
    ``null``.
    """
    data = read_json_artifact(path)
    if data is None:
        return None
    return {"raw": data}


def percent_covered(payload: dict[str, Any] | None) -> float | None:
    """Return ``totals.percent_covered`` from a raw payload, if present.

    Used for display only.
    """
    if not payload:
        return None
    raw = payload.get("raw")
    totals = raw.get("totals") if isinstance(raw, dict) else None
    value = totals.get("percent_covered") if isinstance(totals, dict) else None
    if isinstance(value, int | float) and not isinstance(value, bool):
        return float(value)
    return None


class CoveragePyAdapter(CoverageAdapter):
    """Coverage.py adapter for the ``backend-python`` workspace."""

    @property
    def name(self) -> str:
        return "coverage.py"

    @property
    def language(self) -> str:
        return "python"

    def parse_coverage_file(self, coverage_file: Path) -> dict[str, Any] | None:
        return parse_python_coverage(coverage_file)
