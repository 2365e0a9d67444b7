"""Reporters for outputting branch test results."""

from __future__ import annotations

from branchgate.agents.reporters.json_reporter import JSONReporter
from branchgate.agents.reporters.terminal import CLIReporter, reporter

__all__ = [
    "CLIReporter",
    "JSONReporter",
    "reporter",
]
