"""Controllers for orchestrator CLI commands."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from dataclasses import dataclass
from pathlib import Path

from subagents.config import Settings, load_cli_config
from subagents.orchestrator.backend import BACKEND_REGISTRY
from subagents.orchestrator.contracts import BatchRequest, batch_result_to_dict, load_batch_request
from subagents.orchestrator.health import check_health
from subagents.orchestrator.models import BatchResult
from subagents.orchestrator.runner import SubagentRunner, resolve_command
from subagents.orchestrator.services import run_batch

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RunBatchCommand:
    """CLI input for one batch run."""

    tasks_path: Path
    default_timeout_seconds: float | None
    default_workspace: Path | None
    output_path: Path | None


@dataclass(slots=True)
class HealthCommand:
    """CLI input for backend availability probe."""

    timeout_seconds: float


@dataclass(slots=True)
class CommandResult:
    """Lines to render plus overall status."""

    lines: list[str]
    success: bool


class OrchestratorCliController:
    """Coordinates batch, backend listing, and health CLI operations."""

    def run_batch(self, command: RunBatchCommand) -> CommandResult:
        settings = Settings.from_env()
        settings.validate()
        request = load_batch_request(command.tasks_path)
        batch = asyncio.run(_run_with_drain(settings, request, command=command))
        if batch is None:
            return CommandResult(
                lines=["Shutdown requested before the batch completed."],
                success=False,
            )

        report = json.dumps(batch_result_to_dict(batch), indent=2, ensure_ascii=False)
        if command.output_path is not None:
            command.output_path.parent.mkdir(parents=True, exist_ok=True)
            command.output_path.write_text(report + "\n", "utf-8")
            lines = [
                f"Batch summary: completed={batch.completed} failed={batch.failed} "
                f"total={batch.total} duration_ms={batch.total_duration_ms}",
                f"Report: {command.output_path}",
            ]
        else:
            lines = report.splitlines()
        return CommandResult(lines=lines, success=batch.failed == 0)

    def backends(self) -> list[str]:
        """List registered backends with the command each would run."""

        settings = Settings.from_env()
        cli_config = load_cli_config(
            settings.orchestrator.cli_config_path,
            default_backend=settings.overrides.default_backend,
        )
        lines = ["Backends:"]
        for name, backend in BACKEND_REGISTRY.items():
            try:
                command = " ".join(
                    resolve_command(backend, overrides=settings.overrides, cli_config=cli_config),
                )
            except ValueError as error:
                command = f"<invalid: {error}>"
            marker = " (default)" if name == cli_config.backend else ""
            lines.append(f"  {name}{marker}: command={command}")
        return lines

    def health(self, command: HealthCommand) -> CommandResult:
        report = check_health(Settings.from_env(), timeout_seconds=command.timeout_seconds)
        return CommandResult(
            lines=json.dumps(report.to_dict(), indent=2).splitlines(),
            success=report.healthy,
        )


async def _run_with_drain(
    settings: Settings,
    request: BatchRequest,
    *,
    command: RunBatchCommand,
) -> BatchResult | None:
    """Run the batch; on SIGINT/SIGTERM wait a bounded time for in-flight tasks."""

    runner = SubagentRunner(settings)
    timeout_seconds = command.default_timeout_seconds or request.default_timeout_seconds
    workspace = command.default_workspace or request.default_workspace
    batch_task = asyncio.ensure_future(
        run_batch(request.tasks, timeout_seconds, workspace, runner=runner),
    )

    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    installed: list[signal.Signals] = []
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, shutdown.set)
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(signum)

    shutdown_wait = asyncio.ensure_future(shutdown.wait())
    try:
        await asyncio.wait({batch_task, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED)
        if batch_task.done():
            return batch_task.result()

        drain_seconds = settings.orchestrator.shutdown_drain_seconds
        logger.warning(
            "Shutdown requested; waiting up to %ss for %d running task(s)",
            f"{drain_seconds:g}",
            runner.active_tasks.size(),
        )
        remaining = await runner.active_tasks.wait_until_empty(drain_seconds)
        if not remaining:
            return await batch_task
        logger.warning("Abandoning running task(s): %s", ", ".join(sorted(remaining)))
        batch_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await batch_task
        return None
    finally:
        shutdown_wait.cancel()
        for signum in installed:
            loop.remove_signal_handler(signum)
