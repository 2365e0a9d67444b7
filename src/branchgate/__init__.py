"""branchgate: per-branch test and coverage gate."""

__version__ = "0.3.0"
