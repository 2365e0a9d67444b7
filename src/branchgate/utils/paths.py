"""Relative path normalization shared by the resolver and the coverage parsers."""

from __future__ import annotations

from typing import Any


def normalize_relative_path(value: Any) -> str:
    """Normalize a project-relative path for comparison.

    Backslashes become forward slashes, surrounding whitespace is trimmed and
    leading slashes are stripped. ``None`` and non-string values normalize to
    ``""`` so callers can filter them out with a plain truthiness check.
    """
    if not isinstance(value, str):
        return ""
    return value.replace("\\", "/").strip().lstrip("/")


def normalize_coverage_key(value: Any) -> str:
    """Normalize a key recorded in a coverage artifact.

    Coverage tools write absolute paths, so only separators and whitespace are
    touched here; the leading slash is kept so absolute keys stay absolute.
    """
    if not isinstance(value, str):
        return ""
    return value.replace("\\", "/").strip()


def strip_directory_prefix(path: str, directory: str) -> str:
    """Return *path* relative to *directory* when it lives underneath it."""
    prefix = normalize_coverage_key(directory).rstrip("/") + "/"
    normalized = normalize_coverage_key(path)
    if normalized.startswith(prefix):
        return normalized[len(prefix) :]
    return normalize_relative_path(normalized)
