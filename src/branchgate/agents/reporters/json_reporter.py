"""JSON reporter: machine-readable output of branch test runs.

Wraps :meth:`TestRunResult.to_dict` with tool metadata so CI jobs and the
remediation loop can consume one stable document.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from branchgate import __version__

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from branchgate.models.test_run import TestRunResult

logger = logging.getLogger(__name__)


class JSONReporter:
    """Serialize test runs and detection results to JSON."""

    def generate(
        self,
        output_path: Path,
        *,
        result: TestRunResult,
        branch: str | None = None,
    ) -> Path:
        """Write the report for *result* to *output_path*."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.generate_string(result=result, branch=branch), encoding="utf-8")
        logger.info("JSON report written to %s", output_path)
        return output_path

    def generate_string(self, *, result: TestRunResult, branch: str | None = None) -> str:
        report = _build_report({"branch": branch, "result": result.to_dict()})
        return json.dumps(report, indent=2, ensure_ascii=False, default=str)

    def workspaces_string(self, workspaces: Sequence[dict[str, Any]]) -> str:
        report = _build_report({"workspaces": list(workspaces)})
        return json.dumps(report, indent=2, ensure_ascii=False, default=str)


def _build_report(payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "tool": "branchgate",
        "version": __version__,
        "timestamp": datetime.now(tz=UTC).isoformat(),
        **payload,
    }
