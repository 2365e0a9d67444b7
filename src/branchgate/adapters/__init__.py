"""Adapters that read coverage artifacts produced by workspace test runs."""

from branchgate.adapters.coverage import CoverageAdapter, CoveragePyAdapter, IstanbulAdapter

__all__ = [
    "CoverageAdapter",
    "CoveragePyAdapter",
    "IstanbulAdapter",
]
