"""Base class and shared helpers for coverage artifact adapters."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, TypeVar

from branchgate.utils.paths import normalize_coverage_key, normalize_relative_path

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

T = TypeVar("T")


def read_json_artifact(path: Path) -> Any:
    """Load a JSON artifact, returning ``None`` when missing or malformed.

    Coverage artifacts are produced by the project's own tooling, so a bad
    file is reported as "coverage unavailable" rather than raised.
    """
    if not path.is_file():
        logger.debug("Coverage artifact not found: %s", path)
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Failed to parse coverage artifact %s: %s", path, exc)
        return None


def resolve_coverage_entry(entries: dict[str, T], relative_path: str) -> T | None:
    """Find the entry recorded for *relative_path*.

    The exact normalized key wins; otherwise the first key ending with
    ``"/" + relative_path`` is used, which matches files recorded with a
    longer prefix (absolute paths, ``packages/app/src/foo.js`` for
    ``src/foo.js``). Returns ``None`` when nothing matches.
    """
    normalized = normalize_relative_path(relative_path)
    if not normalized:
        return None
    if normalized in entries:
        return entries[normalized]
    suffix = f"/{normalized}"
    for key, entry in entries.items():
        if key.endswith(suffix):
            return entry
    return None


def index_object_entries(data: dict[str, Any], *, skip: frozenset[str] = frozenset()) -> dict[str, dict[str, Any]]:
    """Map normalized artifact keys to their object values.

    Non-object values and keys listed in *skip* are dropped; insertion order is
    preserved so suffix matching stays deterministic.
    """
    indexed: dict[str, dict[str, Any]] = {}
    for key, value in data.items():
        if key in skip or not isinstance(value, dict):
            continue
        normalized = normalize_coverage_key(key)
        if normalized and normalized not in indexed:
            indexed[normalized] = value
    return indexed


class CoverageAdapter(ABC):
    """Reads one coverage tool's artifact format.

    Each concrete adapter knows where its tool writes output inside a
    workspace and how to turn the file into the gate's normalized model.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Coverage tool identifier (e.g. ``istanbul``, ``coverage.py``)."""

    @property
    @abstractmethod
    def language(self) -> str:
        """Primary language of the workspaces this adapter reads."""

    @abstractmethod
    def parse_coverage_file(self, coverage_file: Path) -> Any:
        """Parse *coverage_file*, returning ``None`` when it is unusable."""
