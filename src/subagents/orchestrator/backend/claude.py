"""Claude Code CLI backend.

Flags used in print mode:

- ``-p <prompt>``: non-interactive prompt
- ``--output-format stream-json``: newline-delimited JSON events
- ``--mcp-config <file>``: servers to load (strict schema)
- ``--dangerously-skip-permissions``: opt-in unlimited tool use
- ``--max-turns <n>`` / ``--model <model>``
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from subagents.orchestrator.backend.base import BackendOptions, ParsedOutput
from subagents.orchestrator.output_fallback import recover_stream_output

_SERVER_FIELDS = frozenset({"type", "command", "args", "env", "url", "headers"})
_SERVER_TYPES = frozenset({"stdio", "sse", "http"})


class ClaudeBackend:
    """Invoke `claude -p` with stream-json output."""

    name = "claude"
    default_command = "claude"
    inherits_default_mcp_config = False

    def build_args(self, prompt: str, options: BackendOptions) -> list[str]:
        args = ["-p", prompt, "--output-format", "stream-json"]
        if options.mcp_config_path is not None:
            args.extend(["--mcp-config", str(options.mcp_config_path)])
        if options.allow_all_tools:
            args.append("--dangerously-skip-permissions")
        if options.max_turns:
            args.extend(["--max-turns", str(options.max_turns)])
        if options.model:
            args.extend(["--model", options.model])
        return args

    def build_env(self, mcp_config_path: Path | None, base_env: Mapping[str, str]) -> dict[str, str]:
        return dict(base_env)

    def parse_output(self, stdout: str, stderr: str, exit_code: int) -> ParsedOutput:
        recovered = recover_stream_output(stdout)
        return ParsedOutput(output=recovered.text, tokens=recovered.tokens)

    def augment_prompt_for_mcp(self, prompt: str, mcp_servers: tuple[str, ...]) -> str:
        return prompt

    def transform_mcp_config(self, document: dict[str, Any]) -> dict[str, Any]:
        """Strip fields outside Claude's server schema (e.g. Copilot's `tools`)."""

        servers = document.get("mcpServers")
        if not isinstance(servers, dict):
            return {"mcpServers": {}}
        stripped: dict[str, Any] = {}
        for name, server in servers.items():
            if not isinstance(server, dict):
                continue
            entry = {key: value for key, value in server.items() if key in _SERVER_FIELDS}
            if entry.get("type") not in _SERVER_TYPES:
                entry.pop("type", None)
            stripped[name] = entry
        return {"mcpServers": stripped}
