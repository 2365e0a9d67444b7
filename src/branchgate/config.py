"""Configuration parsing from ``.branchgate.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from branchgate.agents.analyzers.changed_paths import DEFAULT_SOURCE_EXTENSIONS
from branchgate.errors import BranchGateError
from branchgate.models.coverage import DIMENSIONS, Thresholds
from branchgate.utils.git import DEFAULT_BASE_BRANCH

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".branchgate.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")


class ConfigError(BranchGateError):
    """Raised when ``.branchgate.yml`` cannot be parsed."""


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


# ── Sections ─────────────────────────────────────────────────────


@dataclass
class CoverageConfig:
    """Coverage thresholds and changed-file gate settings."""

    thresholds: Thresholds = field(default_factory=Thresholds)
    """Aggregate thresholds applied to every Node workspace's totals."""

    changed_file_thresholds: Thresholds = field(default_factory=Thresholds)
    """Thresholds applied to each changed source file."""

    enforce_changed_files: bool = True
    """Whether the changed-file gate runs at all."""

    source_extensions: tuple[str, ...] = DEFAULT_SOURCE_EXTENSIONS
    """Extensions of files considered source code by the changed-file gate."""


@dataclass
class GitConfig:
    """Git settings."""

    base_branch: str = DEFAULT_BASE_BRANCH
    """Branch that feature branches are diffed against."""


@dataclass
class ExecutionConfig:
    """Workspace job execution settings."""

    simulate: bool = False
    """Return simulated results instead of running jobs (unless ``real``)."""

    max_concurrency: int = 4
    """Maximum number of workspace jobs running at once."""

    job_timeout: float = 600.0
    """Seconds before the local job runner kills a workspace command."""

    auto_test_debounce: float = 0.75
    """Seconds a scheduled automatic run waits for further changes."""


@dataclass
class BranchGateConfig:
    """Top-level configuration."""

    coverage: CoverageConfig = field(default_factory=CoverageConfig)
    git: GitConfig = field(default_factory=GitConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    raw: dict[str, Any] = field(default_factory=dict)
    """Parsed YAML after environment variable expansion."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "coverage": {
                **self.coverage.thresholds.to_dict(),
                "changed_files": self.coverage.changed_file_thresholds.to_dict(),
                "enforce_changed_files": self.coverage.enforce_changed_files,
                "source_extensions": list(self.coverage.source_extensions),
            },
            "git": {"base_branch": self.git.base_branch},
            "execution": {
                "simulate": self.execution.simulate,
                "max_concurrency": self.execution.max_concurrency,
                "job_timeout": self.execution.job_timeout,
                "auto_test_debounce": self.execution.auto_test_debounce,
            },
        }


# ── Parsing ──────────────────────────────────────────────────────


def _parse_thresholds(raw: dict[str, Any]) -> Thresholds:
    values = {
        dimension: float(raw[dimension])
        for dimension in DIMENSIONS
        if raw.get(dimension) is not None
    }
    return Thresholds(**values)


def _parse_coverage_config(raw: dict[str, Any]) -> CoverageConfig:
    """Parse coverage configuration from raw YAML."""
    coverage_raw = _section(raw, "coverage")
    changed_raw = coverage_raw.get("changed_files", {})
    if not isinstance(changed_raw, dict):
        changed_raw = {}

    extensions_raw = coverage_raw.get("source_extensions")
    extensions = (
        tuple(str(ext).strip().lower() for ext in extensions_raw if str(ext).strip())
        if isinstance(extensions_raw, list)
        else DEFAULT_SOURCE_EXTENSIONS
    )

    return CoverageConfig(
        thresholds=_parse_thresholds(coverage_raw),
        changed_file_thresholds=_parse_thresholds(changed_raw),
        enforce_changed_files=_as_bool(coverage_raw.get("enforce_changed_files"), default=True),
        source_extensions=extensions,
    )


def _parse_git_config(raw: dict[str, Any]) -> GitConfig:
    git_raw = _section(raw, "git")
    return GitConfig(base_branch=str(git_raw.get("base_branch", DEFAULT_BASE_BRANCH)).strip())


def _parse_execution_config(raw: dict[str, Any]) -> ExecutionConfig:
    """Parse execution configuration from raw YAML."""
    exec_raw = _section(raw, "execution")
    return ExecutionConfig(
        simulate=_as_bool(exec_raw.get("simulate"), default=False),
        max_concurrency=int(exec_raw.get("max_concurrency", 4)),
        job_timeout=float(exec_raw.get("job_timeout", 600.0)),
        auto_test_debounce=float(exec_raw.get("auto_test_debounce", 0.75)),
    )


def load_config(root: str | Path) -> BranchGateConfig:
    """Load and parse ``.branchgate.yml`` from *root*.

    Falls back to defaults when the file is missing or a section is absent.

    Raises:
        ConfigError: If the file is not valid YAML or a value has the wrong
            type.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        try:
            parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_file}: {exc}") from exc
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)
        elif parsed is not None:
            logger.warning("Ignoring %s: top-level value is not a mapping", config_file)
    else:
        logger.debug("No %s found in %s, using defaults", CONFIG_FILENAME, root_path)

    try:
        return BranchGateConfig(
            coverage=_parse_coverage_config(raw),
            git=_parse_git_config(raw),
            execution=_parse_execution_config(raw),
            raw=raw,
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value in {config_file}: {exc}") from exc


# ── Validation ───────────────────────────────────────────────────


def _validate_thresholds(thresholds: Thresholds, prefix: str) -> list[str]:
    max_percentage = 100.0
    return [
        f"{prefix}.{dimension} must be between 0 and 100 (got: {thresholds.get(dimension)})"
        for dimension in DIMENSIONS
        if not 0.0 <= thresholds.get(dimension) <= max_percentage
    ]


def _validate_coverage_config(coverage: CoverageConfig) -> list[str]:
    """Validate coverage threshold settings."""
    errors = _validate_thresholds(coverage.thresholds, "coverage")
    errors.extend(_validate_thresholds(coverage.changed_file_thresholds, "coverage.changed_files"))

    if not coverage.source_extensions:
        errors.append("coverage.source_extensions must not be empty")
    errors.extend(
        f"coverage.source_extensions entries must start with '.' (got: {ext!r})"
        for ext in coverage.source_extensions
        if not ext.startswith(".")
    )
    return errors


def _validate_execution_config(execution: ExecutionConfig) -> list[str]:
    errors: list[str] = []
    if execution.max_concurrency < 1:
        errors.append(
            f"execution.max_concurrency must be at least 1 (got: {execution.max_concurrency})"
        )
    if execution.job_timeout <= 0:
        errors.append(f"execution.job_timeout must be positive (got: {execution.job_timeout})")
    if execution.auto_test_debounce < 0:
        errors.append(
            f"execution.auto_test_debounce must not be negative (got: {execution.auto_test_debounce})"
        )
    return errors


def validate_config(config: BranchGateConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []

    errors.extend(_validate_coverage_config(config.coverage))

    if not config.git.base_branch:
        errors.append("git.base_branch must not be empty")

    errors.extend(_validate_execution_config(config.execution))
    return errors
