"""Parallel sub-agent orchestration over external CLI agents."""

__version__ = "1.1.0"
