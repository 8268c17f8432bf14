"""Runtime configuration for sub-agent orchestration."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("copilot", "claude")
DEFAULT_BACKEND = "copilot"

CONFIG_FILE_NAME = "config.json"
MCP_CONFIG_FILE_NAME = "mcp-subagent.json"
LOG_DIR_NAME = "logs"


class ConfigError(ValueError):
    """Invalid configuration value."""


@dataclass(slots=True)
class CopilotConfig:
    """Copilot CLI options from the persisted config file."""

    command: str | None = None
    agent: str | None = None
    model: str | None = None
    allow_all_tools: bool = False
    allow_all_paths: bool = False


@dataclass(slots=True)
class ClaudeConfig:
    """Claude CLI options from the persisted config file."""

    command: str | None = None
    model: str | None = None
    max_turns: int | None = None
    allow_all_tools: bool = False


@dataclass(slots=True)
class CliConfig:
    """Backend selection and per-backend options (`cli` section of config.json)."""

    backend: str = DEFAULT_BACKEND
    copilot: CopilotConfig = field(default_factory=CopilotConfig)
    claude: ClaudeConfig = field(default_factory=ClaudeConfig)

    def command_for(self, backend_name: str) -> str | None:
        """Configured executable override for a backend, if any."""

        if backend_name == "copilot":
            return self.copilot.command
        if backend_name == "claude":
            return self.claude.command
        return None


@dataclass(slots=True)
class CommandOverrides:
    """Executable and backend overrides read from the process environment."""

    copilot: str | None = None
    claude: str | None = None
    default_backend: str | None = None

    def command_for(self, backend_name: str) -> str | None:
        """Environment executable override for a backend, if any."""

        if backend_name == "copilot":
            return self.copilot
        if backend_name == "claude":
            return self.claude
        return None


@dataclass(slots=True)
class OrchestratorSettings:
    """Engine-level defaults."""

    config_dir: Path = field(default_factory=lambda: default_config_dir())
    default_timeout_seconds: float = 120.0
    default_workspace: Path = field(default_factory=Path.cwd)
    retry_max_attempts: int = 2
    retry_delay_seconds: float = 2.0
    context_max_chars: int = 24_000
    shutdown_drain_seconds: float = 30.0
    audit_enabled: bool = True
    temp_dir: Path = field(default_factory=lambda: Path(tempfile.gettempdir()))

    @property
    def cli_config_path(self) -> Path:
        return self.config_dir / CONFIG_FILE_NAME

    @property
    def mcp_config_path(self) -> Path:
        return self.config_dir / MCP_CONFIG_FILE_NAME

    @property
    def log_dir(self) -> Path:
        return self.config_dir / LOG_DIR_NAME


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    overrides: CommandOverrides = field(default_factory=CommandOverrides)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with sane defaults for local use."""

        config_dir_raw = os.getenv("ORCHESTRATOR_CONFIG_DIR", "").strip()
        workspace_raw = os.getenv("ORCHESTRATOR_WORKSPACE", "").strip()
        default_backend = _optional_env("ORCHESTRATOR_DEFAULT_BACKEND")
        if default_backend is not None:
            default_backend = default_backend.lower()
            if default_backend not in SUPPORTED_BACKENDS:
                raise ConfigError(
                    f"Invalid ORCHESTRATOR_DEFAULT_BACKEND: {default_backend!r}. "
                    f"Use one of {', '.join(SUPPORTED_BACKENDS)}.",
                )
        return cls(
            orchestrator=OrchestratorSettings(
                config_dir=Path(config_dir_raw) if config_dir_raw else default_config_dir(),
                default_timeout_seconds=_env_float("ORCHESTRATOR_DEFAULT_TIMEOUT_SECONDS", 120.0),
                default_workspace=Path(workspace_raw) if workspace_raw else Path.cwd(),
                retry_max_attempts=_env_int("ORCHESTRATOR_RETRY_MAX_ATTEMPTS", 2),
                retry_delay_seconds=_env_float("ORCHESTRATOR_RETRY_DELAY_SECONDS", 2.0),
                context_max_chars=_env_int("ORCHESTRATOR_CONTEXT_MAX_CHARS", 24_000),
                shutdown_drain_seconds=_env_float("ORCHESTRATOR_SHUTDOWN_DRAIN_SECONDS", 30.0),
                audit_enabled=_env_bool("ORCHESTRATOR_AUDIT_LOG", default=True),
            ),
            overrides=CommandOverrides(
                copilot=_optional_env("COPILOT_CLI"),
                claude=_optional_env("CLAUDE_CLI"),
                default_backend=default_backend,
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.orchestrator.default_timeout_seconds <= 0:
            raise ConfigError("ORCHESTRATOR_DEFAULT_TIMEOUT_SECONDS must be > 0.")
        if self.orchestrator.retry_max_attempts < 1:
            raise ConfigError("ORCHESTRATOR_RETRY_MAX_ATTEMPTS must be >= 1.")
        if self.orchestrator.retry_delay_seconds < 0:
            raise ConfigError("ORCHESTRATOR_RETRY_DELAY_SECONDS must be >= 0.")
        if self.orchestrator.context_max_chars < 0:
            raise ConfigError("ORCHESTRATOR_CONTEXT_MAX_CHARS must be >= 0.")
        if self.orchestrator.shutdown_drain_seconds < 0:
            raise ConfigError("ORCHESTRATOR_SHUTDOWN_DRAIN_SECONDS must be >= 0.")


def default_config_dir(os_name: str | None = None) -> Path:
    """Per-user config directory (`~/.config/orchestrator` or `%LOCALAPPDATA%`)."""

    if (os_name or os.name) == "nt":
        base = os.getenv("LOCALAPPDATA") or os.getenv("APPDATA") or str(Path.home())
        return Path(base) / "orchestrator"
    return Path.home() / ".config" / "orchestrator"


def load_cli_config(path: Path, *, default_backend: str | None = None) -> CliConfig:
    """Load the `cli` section of config.json, falling back to secure defaults."""

    fallback_backend = default_backend or DEFAULT_BACKEND
    try:
        payload = json.loads(path.read_text("utf-8"))
    except FileNotFoundError:
        return CliConfig(backend=fallback_backend)
    except (OSError, json.JSONDecodeError) as error:
        logger.warning("Ignoring unreadable CLI config %s: %s", path, error)
        return CliConfig(backend=fallback_backend)

    raw = payload.get("cli") if isinstance(payload, dict) else None
    if not isinstance(raw, dict):
        return CliConfig(backend=fallback_backend)

    backend = raw.get("backend", fallback_backend)
    if not isinstance(backend, str) or backend.strip().lower() not in SUPPORTED_BACKENDS:
        logger.warning("Ignoring unsupported backend %r in %s", backend, path)
        backend = fallback_backend
    copilot_raw = raw.get("copilot") if isinstance(raw.get("copilot"), dict) else {}
    claude_raw = raw.get("claude") if isinstance(raw.get("claude"), dict) else {}
    return CliConfig(
        backend=backend.strip().lower(),
        copilot=CopilotConfig(
            command=_optional_str(copilot_raw.get("command")),
            agent=_optional_str(copilot_raw.get("agent")),
            model=_optional_str(copilot_raw.get("model")),
            allow_all_tools=copilot_raw.get("allowAllTools") is True,
            allow_all_paths=copilot_raw.get("allowAllPaths") is True,
        ),
        claude=ClaudeConfig(
            command=_optional_str(claude_raw.get("command")),
            model=_optional_str(claude_raw.get("model")),
            max_turns=_optional_positive_int(claude_raw.get("maxTurns")),
            allow_all_tools=claude_raw.get("allowAllTools") is True,
        ),
    )


def _optional_env(name: str) -> str | None:
    value = os.getenv(name, "").strip()
    return value or None


def _optional_str(value: object) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def _optional_positive_int(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as error:
        raise ConfigError(f"Invalid numeric value for {name}: {value!r}") from error


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as error:
        raise ConfigError(f"Invalid integer value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean value for {name}: {value!r}")
