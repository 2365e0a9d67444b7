"""Path, git and subprocess helpers."""
