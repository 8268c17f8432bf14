from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from subagents.config import (
    ConfigError,
    OrchestratorSettings,
    Settings,
    default_config_dir,
    load_cli_config,
)

pytestmark = [
    allure.epic("Sub-agent Runtime"),
    allure.feature("Configuration"),
]

_ENV_NAMES = (
    "ORCHESTRATOR_CONFIG_DIR",
    "ORCHESTRATOR_WORKSPACE",
    "ORCHESTRATOR_DEFAULT_BACKEND",
    "ORCHESTRATOR_DEFAULT_TIMEOUT_SECONDS",
    "ORCHESTRATOR_RETRY_MAX_ATTEMPTS",
    "ORCHESTRATOR_RETRY_DELAY_SECONDS",
    "ORCHESTRATOR_CONTEXT_MAX_CHARS",
    "ORCHESTRATOR_SHUTDOWN_DRAIN_SECONDS",
    "ORCHESTRATOR_AUDIT_LOG",
    "COPILOT_CLI",
    "CLAUDE_CLI",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    settings = Settings.from_env()

    assert settings.orchestrator.default_timeout_seconds == 120.0
    assert settings.orchestrator.default_workspace == tmp_path
    assert settings.orchestrator.retry_max_attempts == 2
    assert settings.orchestrator.retry_delay_seconds == 2.0
    assert settings.orchestrator.audit_enabled is True
    assert settings.overrides.copilot is None
    assert settings.overrides.default_backend is None
    settings.validate()


def test_from_env_reads_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("ORCHESTRATOR_CONFIG_DIR", str(tmp_path / "cfg"))
    monkeypatch.setenv("ORCHESTRATOR_WORKSPACE", str(tmp_path))
    monkeypatch.setenv("ORCHESTRATOR_DEFAULT_BACKEND", "Claude")
    monkeypatch.setenv("ORCHESTRATOR_DEFAULT_TIMEOUT_SECONDS", "45")
    monkeypatch.setenv("ORCHESTRATOR_AUDIT_LOG", "off")
    monkeypatch.setenv("COPILOT_CLI", "/opt/bin/copilot")
    monkeypatch.setenv("CLAUDE_CLI", "  ")

    settings = Settings.from_env()

    assert settings.orchestrator.config_dir == tmp_path / "cfg"
    assert settings.orchestrator.cli_config_path == tmp_path / "cfg" / "config.json"
    assert settings.orchestrator.mcp_config_path == tmp_path / "cfg" / "mcp-subagent.json"
    assert settings.orchestrator.log_dir == tmp_path / "cfg" / "logs"
    assert settings.orchestrator.default_timeout_seconds == 45.0
    assert settings.orchestrator.audit_enabled is False
    assert settings.overrides.default_backend == "claude"
    assert settings.overrides.command_for("copilot") == "/opt/bin/copilot"
    assert settings.overrides.command_for("claude") is None


def test_from_env_rejects_unknown_default_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_DEFAULT_BACKEND", "gemini")
    with pytest.raises(ConfigError, match="ORCHESTRATOR_DEFAULT_BACKEND"):
        Settings.from_env()


def test_from_env_rejects_malformed_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORCHESTRATOR_AUDIT_LOG", "maybe")
    with pytest.raises(ConfigError, match="Invalid boolean value for ORCHESTRATOR_AUDIT_LOG"):
        Settings.from_env()

    monkeypatch.setenv("ORCHESTRATOR_AUDIT_LOG", "1")
    monkeypatch.setenv("ORCHESTRATOR_RETRY_DELAY_SECONDS", "soon")
    with pytest.raises(ConfigError, match="ORCHESTRATOR_RETRY_DELAY_SECONDS"):
        Settings.from_env()


def test_validate_rejects_out_of_range_values() -> None:
    with pytest.raises(ConfigError, match="DEFAULT_TIMEOUT_SECONDS"):
        Settings(orchestrator=OrchestratorSettings(default_timeout_seconds=0)).validate()
    with pytest.raises(ConfigError, match="RETRY_MAX_ATTEMPTS"):
        Settings(orchestrator=OrchestratorSettings(retry_max_attempts=0)).validate()


def test_default_config_dir_per_platform(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path / "local"))
    assert default_config_dir("nt") == tmp_path / "local" / "orchestrator"
    assert default_config_dir("posix") == Path.home() / ".config" / "orchestrator"


def test_load_cli_config_missing_file_is_secure_default(tmp_path: Path) -> None:
    config = load_cli_config(tmp_path / "config.json", default_backend="claude")
    assert config.backend == "claude"
    assert config.copilot.allow_all_tools is False
    assert config.copilot.allow_all_paths is False
    assert config.claude.allow_all_tools is False
    assert config.claude.max_turns is None


def test_load_cli_config_reads_cli_section(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "cli": {
                    "backend": "claude",
                    "copilot": {
                        "command": "/usr/local/bin/copilot",
                        "agent": "job-search",
                        "allowAllTools": True,
                        "allowAllPaths": "yes",
                        "model": "gpt-5",
                    },
                    "claude": {"allowAllTools": True, "maxTurns": 12, "model": "opus"},
                },
            },
        ),
        "utf-8",
    )

    config = load_cli_config(path)

    assert config.backend == "claude"
    assert config.copilot.command == "/usr/local/bin/copilot"
    assert config.copilot.agent == "job-search"
    assert config.copilot.allow_all_tools is True
    assert config.copilot.allow_all_paths is False
    assert config.copilot.model == "gpt-5"
    assert config.claude.allow_all_tools is True
    assert config.claude.max_turns == 12
    assert config.command_for("copilot") == "/usr/local/bin/copilot"
    assert config.command_for("claude") is None


def test_load_cli_config_ignores_broken_json_and_unknown_backend(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{broken", "utf-8")
    assert load_cli_config(path).backend == "copilot"

    path.write_text(json.dumps({"cli": {"backend": "gemini"}}), "utf-8")
    assert load_cli_config(path).backend == "copilot"
