"""Detectors that inspect a project tree."""

from branchgate.agents.detectors.workspace import (
    DISCOVERY_ORDER,
    TestCommand,
    Workspace,
    WorkspaceDetector,
    WorkspaceKind,
    detect_workspaces,
)

__all__ = [
    "DISCOVERY_ORDER",
    "TestCommand",
    "Workspace",
    "WorkspaceDetector",
    "WorkspaceKind",
    "detect_workspaces",
]
