"""Lightweight availability probe for the registered CLI backends."""

from __future__ import annotations

import platform
import subprocess
from dataclasses import dataclass, field

from subagents.config import Settings, load_cli_config
from subagents.orchestrator.backend import BACKEND_REGISTRY
from subagents.orchestrator.runner import resolve_command

PROBE_TIMEOUT_SECONDS = 5


@dataclass(slots=True)
class BackendHealth:
    """One backend probe result."""

    name: str
    command: str
    available: bool
    version: str | None = None
    error: str | None = None


@dataclass(slots=True)
class HealthReport:
    """Probe results plus the configuration the orchestrator would use."""

    healthy: bool
    platform: str
    config_dir: str
    config_exists: bool
    default_backend: str
    backends: list[BackendHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "healthy": self.healthy,
            "platform": self.platform,
            "config_dir": self.config_dir,
            "config_exists": self.config_exists,
            "default_backend": self.default_backend,
            "backends": {
                backend.name: {
                    "command": backend.command,
                    "available": backend.available,
                    "version": backend.version,
                    "error": backend.error,
                }
                for backend in self.backends
            },
        }


def check_health(settings: Settings, *, timeout_seconds: float = PROBE_TIMEOUT_SECONDS) -> HealthReport:
    """Run `--version` against every backend; healthy if at least one answers."""

    orchestrator = settings.orchestrator
    cli_config = load_cli_config(
        orchestrator.cli_config_path,
        default_backend=settings.overrides.default_backend,
    )
    results: list[BackendHealth] = []
    for backend in BACKEND_REGISTRY.values():
        try:
            command = resolve_command(backend, overrides=settings.overrides, cli_config=cli_config)
        except ValueError as error:
            results.append(
                BackendHealth(name=backend.name, command="", available=False, error=str(error)),
            )
            continue
        results.append(_probe(backend.name, command, timeout_seconds=timeout_seconds))

    return HealthReport(
        healthy=any(result.available for result in results),
        platform=platform.system().lower(),
        config_dir=str(orchestrator.config_dir),
        config_exists=orchestrator.cli_config_path.exists(),
        default_backend=cli_config.backend,
        backends=results,
    )


def _probe(name: str, command: list[str], *, timeout_seconds: float) -> BackendHealth:
    display = " ".join(command)
    try:
        completed = subprocess.run(  # noqa: S603
            [*command, "--version"],
            check=False,
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired:
        return BackendHealth(name=name, command=display, available=False, error="Probe timed out.")
    except OSError as error:
        return BackendHealth(
            name=name,
            command=display,
            available=False,
            error=f"Probe failed to start: {error}",
        )

    if completed.returncode != 0:
        return BackendHealth(
            name=name,
            command=display,
            available=False,
            error=completed.stderr.strip() or f"Exit code: {completed.returncode}",
        )
    return BackendHealth(
        name=name,
        command=display,
        available=True,
        version=completed.stdout.strip() or None,
    )
