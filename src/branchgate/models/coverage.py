"""Coverage metric models."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

# Fixed evaluation order; the first failing dimension is the one reported.
DIMENSIONS: tuple[str, ...] = ("lines", "statements", "functions", "branches")

DEFAULT_THRESHOLD = 100.0


def coerce_pct(value: Any) -> float | None:
    """Convert a raw ``pct`` value into a finite float, or ``None``.

    Booleans, strings that do not parse, ``NaN`` and infinities are all
    treated as absent.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def is_finite(value: float | None) -> bool:
    """Return True when *value* is present and finite."""
    return value is not None and math.isfinite(value)


@dataclass(frozen=True)
class CoverageMetric:
    """Four-dimension coverage percentages (0.0 to 100.0).

    A dimension set to ``None`` could not be read from the artifact and always
    fails a threshold check.
    """

    lines: float | None = None
    statements: float | None = None
    functions: float | None = None
    branches: float | None = None

    @classmethod
    def from_istanbul(cls, entry: Any) -> CoverageMetric:
        """Build a metric from an Istanbul ``{lines: {pct}, ...}`` object."""
        if not isinstance(entry, dict):
            return cls()
        values: dict[str, float | None] = {}
        for dimension in DIMENSIONS:
            sub = entry.get(dimension)
            values[dimension] = coerce_pct(sub.get("pct")) if isinstance(sub, dict) else None
        return cls(**values)

    def get(self, dimension: str) -> float | None:
        """Return the value for *dimension* (one of :data:`DIMENSIONS`)."""
        return getattr(self, dimension)  # type: ignore[no-any-return]

    @property
    def is_complete(self) -> bool:
        """Return True when every dimension holds a finite number."""
        return all(is_finite(self.get(dimension)) for dimension in DIMENSIONS)

    def to_dict(self) -> dict[str, float | None]:
        return {dimension: self.get(dimension) for dimension in DIMENSIONS}


def min_metric(metrics: list[CoverageMetric]) -> CoverageMetric | None:
    """Per-dimension minimum across *metrics*.

    An absent value in any metric makes that dimension absent in the result so
    the weakest input always drives the reported number.
    """
    if not metrics:
        return None
    values: dict[str, float | None] = {}
    for dimension in DIMENSIONS:
        column = [metric.get(dimension) for metric in metrics]
        if any(not is_finite(value) for value in column):
            values[dimension] = None
        else:
            values[dimension] = min(value for value in column if value is not None)
    return CoverageMetric(**values)


@dataclass(frozen=True)
class Thresholds:
    """Minimum percentages required per dimension."""

    lines: float = DEFAULT_THRESHOLD
    statements: float = DEFAULT_THRESHOLD
    functions: float = DEFAULT_THRESHOLD
    branches: float = DEFAULT_THRESHOLD

    def get(self, dimension: str) -> float:
        return getattr(self, dimension)  # type: ignore[no-any-return]

    def merged(self, overrides: Any) -> Thresholds:
        """Return a copy with the finite values from *overrides* applied.

        *overrides* may be a mapping or another :class:`Thresholds`; unknown
        keys and unusable values are ignored.
        """
        if isinstance(overrides, Thresholds):
            return overrides
        if not isinstance(overrides, dict):
            return self
        values = self.to_dict()
        for dimension in DIMENSIONS:
            candidate = coerce_pct(overrides.get(dimension))
            if candidate is not None:
                values[dimension] = candidate
        return Thresholds(**values)

    def to_dict(self) -> dict[str, float]:
        return {dimension: self.get(dimension) for dimension in DIMENSIONS}


@dataclass
class CoverageTotals:
    """Normalized coverage for one workspace."""

    metric: CoverageMetric
    """Aggregate totals from the artifact's ``total`` entry."""

    per_file: dict[str, CoverageMetric] | None = None
    """Per-file metrics keyed by normalized path; ``None`` when the artifact
    only exposes aggregate totals."""


@dataclass
class UncoveredLinesEntry:
    """Uncovered source lines of one file."""

    workspace: str
    file: str
    lines: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"workspace": self.workspace, "file": self.file, "lines": list(self.lines)}
