"""Agents: workspace detection, coverage analysis and reporting."""
