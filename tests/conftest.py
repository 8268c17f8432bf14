"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import shlex
import sys
from pathlib import Path

import pytest

from subagents.config import CommandOverrides, OrchestratorSettings, Settings
from subagents.orchestrator.lifecycle import ActiveTaskSet
from subagents.orchestrator.runner import SubagentRunner

_SRC_DIR = Path(__file__).resolve().parents[1] / "src"

ECHO_AGENT_COMMAND = f"{shlex.quote(sys.executable)} -m subagents.orchestrator.backend.echo_agent"


@pytest.fixture()
def echo_agent_command() -> str:
    return ECHO_AGENT_COMMAND


@pytest.fixture()
def child_env() -> dict[str, str]:
    """Environment for spawned agents that can import the local package."""

    env = dict(os.environ)
    env.pop("ECHO_AGENT_REPLY", None)
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = str(_SRC_DIR) if not existing else f"{_SRC_DIR}{os.pathsep}{existing}"
    return env


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings isolated under tmp_path with both backends pointed at the echo agent."""

    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return Settings(
        orchestrator=OrchestratorSettings(
            config_dir=tmp_path / "config",
            default_timeout_seconds=30.0,
            default_workspace=workspace,
            retry_delay_seconds=0.0,
            temp_dir=temp_dir,
        ),
        overrides=CommandOverrides(copilot=ECHO_AGENT_COMMAND, claude=ECHO_AGENT_COMMAND),
    )


@pytest.fixture()
def runner(settings: Settings, child_env: dict[str, str]) -> SubagentRunner:
    return SubagentRunner(settings, active_tasks=ActiveTaskSet(), base_env=child_env)


@pytest.fixture()
def shared_mcp_config(settings: Settings) -> Path:
    """Shared auxiliary-server config with backend-specific fields."""

    path = settings.orchestrator.mcp_config_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(
            {
                "mcpServers": {
                    "playwright": {
                        "type": "local",
                        "command": "npx",
                        "args": ["@playwright/mcp@latest"],
                        "tools": ["*"],
                    },
                    "filesystem": {
                        "type": "stdio",
                        "command": "npx",
                        "args": ["@modelcontextprotocol/server-filesystem", "/tmp"],
                        "tools": ["read_file"],
                    },
                    "fetch": {"command": "uvx", "args": ["mcp-server-fetch"]},
                },
            },
            indent=2,
        ),
        "utf-8",
    )
    return path
