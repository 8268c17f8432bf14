"""Backend interface for CLI agent invocation."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from subagents.orchestrator.models import TokenUsage


@dataclass(slots=True)
class BackendOptions:
    """Resolved per-invocation options passed to `build_args`."""

    mcp_config_path: Path | None = None
    allow_all_tools: bool = False
    allow_all_paths: bool = False
    max_turns: int | None = None
    model: str | None = None


@dataclass(slots=True)
class ParsedOutput:
    """Normalized output recovered from a finished agent process."""

    output: str
    tokens: TokenUsage | None = None


class CliBackend(Protocol):
    """Strategy for invoking one external agent CLI non-interactively."""

    name: str
    default_command: str
    # True when the CLI loads its own user-level server config without being told.
    inherits_default_mcp_config: bool

    def build_args(self, prompt: str, options: BackendOptions) -> list[str]:
        """Return argv (without the executable) for one task attempt."""

    def build_env(self, mcp_config_path: Path | None, base_env: Mapping[str, str]) -> dict[str, str]:
        """Return the child process environment."""

    def parse_output(self, stdout: str, stderr: str, exit_code: int) -> ParsedOutput:
        """Parse captured output into a normalized result."""

    def augment_prompt_for_mcp(self, prompt: str, mcp_servers: tuple[str, ...]) -> str:
        """Describe capabilities the backend cannot wire in via prompt text."""

    def transform_mcp_config(self, document: dict[str, Any]) -> dict[str, Any]:
        """Adapt the generic auxiliary-server document to this backend's schema."""
