"""CLI agent backends and their fixed registry."""

from __future__ import annotations

from subagents.orchestrator.backend.base import BackendOptions, CliBackend, ParsedOutput
from subagents.orchestrator.backend.claude import ClaudeBackend
from subagents.orchestrator.backend.copilot import CopilotBackend

BACKEND_REGISTRY: dict[str, CliBackend] = {
    "copilot": CopilotBackend(),
    "claude": ClaudeBackend(),
}


def get_backend(name: str) -> CliBackend | None:
    """Look up a backend by case-insensitive name; None when unknown."""

    return BACKEND_REGISTRY.get(name.strip().lower())


def available_backends() -> list[str]:
    """Names of all registered backends."""

    return list(BACKEND_REGISTRY)


__all__ = [
    "BACKEND_REGISTRY",
    "BackendOptions",
    "ClaudeBackend",
    "CliBackend",
    "CopilotBackend",
    "ParsedOutput",
    "available_backends",
    "get_backend",
]
