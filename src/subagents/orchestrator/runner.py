"""Subprocess runner: one OS process per task attempt."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shlex
import signal
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from subagents.config import CliConfig, CommandOverrides, Settings, load_cli_config
from subagents.orchestrator.audit import AuditLog, build_audit_record
from subagents.orchestrator.backend import BACKEND_REGISTRY, BackendOptions, CliBackend, get_backend
from subagents.orchestrator.context import build_enriched_prompt
from subagents.orchestrator.lifecycle import ACTIVE_TASKS, ActiveTaskSet
from subagents.orchestrator.mcp_config import prepare_task_config, remove_ephemeral_config
from subagents.orchestrator.models import Task, TaskOutcome, TaskResult

logger = logging.getLogger(__name__)

# Minimum seconds per auxiliary server; cold start differs a lot between them.
RECOMMENDED_TIMEOUTS: dict[str, float] = {
    "playwright": 120.0,
    "fetch": 60.0,
    "perplexity": 90.0,
    "github": 60.0,
    "filesystem": 30.0,
    "memory": 30.0,
}
UNKNOWN_SERVER_TIMEOUT_SECONDS = 60.0

TERMINATE_GRACE_SECONDS = 2.0
STREAM_DRAIN_SECONDS = 2.0
_READ_CHUNK_BYTES = 65_536
_USE_PROCESS_GROUPS = os.name != "nt"


def recommended_timeout_seconds(mcp_servers: tuple[str, ...]) -> float:
    """Largest per-server minimum; 0 when no servers are requested."""

    return max(
        (RECOMMENDED_TIMEOUTS.get(name, UNKNOWN_SERVER_TIMEOUT_SECONDS) for name in mcp_servers),
        default=0.0,
    )


def resolve_timeout_seconds(task: Task, default_timeout_seconds: float) -> float:
    """Explicit task timeout (else batch default), raised to the server minimum."""

    base = task.timeout_seconds if task.timeout_seconds is not None else default_timeout_seconds
    return max(recommended_timeout_seconds(task.mcp_servers), base)


def resolve_command(
    backend: CliBackend,
    *,
    overrides: CommandOverrides,
    cli_config: CliConfig,
) -> list[str]:
    """Executable argv prefix: env override, then config override, then default."""

    raw = (
        overrides.command_for(backend.name)
        or cli_config.command_for(backend.name)
        or backend.default_command
    )
    argv = shlex.split(raw, posix=os.name != "nt")
    if not argv:
        raise ValueError(f"Empty command for backend {backend.name}")
    return argv


@dataclass(slots=True)
class _StreamCollector:
    """Accumulate one pipe completely; keeps what was read if cancelled."""

    chunks: list[bytes] = field(default_factory=list)

    async def drain(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                return
            self.chunks.append(chunk)

    def text(self) -> str:
        return b"".join(self.chunks).decode("utf-8", errors="replace")


@dataclass(slots=True)
class ProcessOutcome:
    """Raw outcome of one child process."""

    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool
    finished_at: float


async def run_process(
    argv: list[str],
    *,
    cwd: Path,
    env: Mapping[str, str],
    timeout_seconds: float,
) -> ProcessOutcome:
    """Run argv with stdin closed, capture both pipes, terminate on timeout.

    On POSIX the child leads its own process group so that termination also
    reaches the tool processes it started. `finished_at` is the monotonic time
    the child exited or was terminated, before the pipes are drained.

    Raises OSError when the process cannot be started.
    """

    process = await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd),
        env=dict(env),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=_USE_PROCESS_GROUPS,
    )
    stdout = _StreamCollector()
    stderr = _StreamCollector()
    readers = [
        asyncio.create_task(stdout.drain(process.stdout)),
        asyncio.create_task(stderr.drain(process.stderr)),
    ]

    timed_out = False
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout_seconds)
    except TimeoutError:
        timed_out = True
        await _terminate_process(process)
    except asyncio.CancelledError:
        await _terminate_process(process)
        raise
    finally:
        finished_at = time.monotonic()
        _done, pending = await asyncio.wait(readers, timeout=STREAM_DRAIN_SECONDS)
        for reader in pending:
            reader.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    return ProcessOutcome(
        exit_code=process.returncode,
        stdout=stdout.text(),
        stderr=stderr.text(),
        timed_out=timed_out,
        finished_at=finished_at,
    )


async def _terminate_process(process: asyncio.subprocess.Process) -> None:
    """SIGTERM the child and its group, SIGKILL whatever is left after the grace period."""

    if process.returncode is not None and not _USE_PROCESS_GROUPS:
        return
    _signal_process(process, kill=False)
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
    # tool processes started by the child may ignore SIGTERM or outlive it
    _signal_process(process, kill=True)
    if process.returncode is None:
        try:
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except TimeoutError:
            logger.warning("Process %s did not exit after SIGKILL", process.pid)


def _signal_process(process: asyncio.subprocess.Process, *, kill: bool) -> None:
    try:
        if _USE_PROCESS_GROUPS:
            os.killpg(process.pid, signal.SIGKILL if kill else signal.SIGTERM)
        elif process.returncode is None:
            if kill:
                process.kill()
            else:
                process.terminate()
    except (ProcessLookupError, PermissionError):
        return


class SubagentRunner:
    """Executes single task attempts against the configured CLI backends."""

    def __init__(  # noqa: PLR0913
        self,
        settings: Settings,
        *,
        cli_config: CliConfig | None = None,
        audit_log: AuditLog | None = None,
        active_tasks: ActiveTaskSet = ACTIVE_TASKS,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self.settings = settings
        self.cli_config = cli_config or load_cli_config(
            settings.orchestrator.cli_config_path,
            default_backend=settings.overrides.default_backend,
        )
        self.audit_log = audit_log or AuditLog(
            settings.orchestrator.log_dir,
            enabled=settings.orchestrator.audit_enabled,
        )
        self.active_tasks = active_tasks
        self._base_env = base_env

    async def run_task(
        self,
        task: Task,
        *,
        default_timeout_seconds: float,
        default_workspace: Path,
    ) -> TaskResult:
        """Run one attempt; every exit path yields exactly one TaskResult."""

        with self.active_tasks.track(task.id):
            started = time.monotonic()
            backend_name = (task.backend or self.cli_config.backend).strip().lower()
            backend = get_backend(backend_name)
            if backend is None:
                return TaskResult(
                    id=task.id,
                    success=False,
                    duration_ms=_elapsed_ms(started),
                    error=(
                        f"Unknown CLI backend: {backend_name}. "
                        f"Available: {', '.join(BACKEND_REGISTRY)}"
                    ),
                    outcome=TaskOutcome.INVALID_REQUEST,
                    mcp_servers_requested=task.mcp_servers,
                )

            workspace = Path(task.workspace) if task.workspace else default_workspace
            timeout_seconds = resolve_timeout_seconds(task, default_timeout_seconds)
            enriched = await build_enriched_prompt(
                task.prompt,
                task.context,
                workspace,
                max_context_chars=self.settings.orchestrator.context_max_chars,
            )
            final_prompt = backend.augment_prompt_for_mcp(enriched.prompt, task.mcp_servers)

            temp_dir = self.settings.orchestrator.temp_dir
            mcp_config_path = await asyncio.to_thread(
                prepare_task_config,
                backend,
                shared_path=self.settings.orchestrator.mcp_config_path,
                requested=task.mcp_servers,
                temp_dir=temp_dir,
                task_id=task.id,
            )
            try:
                result = await self._execute(
                    task,
                    backend=backend,
                    prompt=final_prompt,
                    mcp_config_path=mcp_config_path,
                    workspace=workspace,
                    timeout_seconds=timeout_seconds,
                    started=started,
                )
            finally:
                await asyncio.to_thread(remove_ephemeral_config, mcp_config_path, temp_dir)

            result.backend = backend.name
            result.mcp_servers_requested = task.mcp_servers
            result.context_files_read = enriched.files_read
            await asyncio.to_thread(
                self.audit_log.append,
                build_audit_record(
                    task,
                    result,
                    backend=backend.name,
                    enriched_prompt_length=len(final_prompt),
                ),
            )
            logger.debug(
                "Task %s finished: outcome=%s duration_ms=%d",
                task.id,
                result.outcome.value if result.outcome else "-",
                result.duration_ms,
            )
            return result

    async def _execute(  # noqa: PLR0913
        self,
        task: Task,
        *,
        backend: CliBackend,
        prompt: str,
        mcp_config_path: Path | None,
        workspace: Path,
        timeout_seconds: float,
        started: float,
    ) -> TaskResult:
        options = self._backend_options(backend.name, mcp_config_path)
        base_env = self._base_env if self._base_env is not None else os.environ
        command_head = backend.default_command
        try:
            command = resolve_command(
                backend,
                overrides=self.settings.overrides,
                cli_config=self.cli_config,
            )
            command_head = command[0]
            argv = [*command, *backend.build_args(prompt, options)]
            env = backend.build_env(mcp_config_path, base_env)
            logger.debug(
                "Spawning task %s: backend=%s command=%s timeout=%ss",
                task.id,
                backend.name,
                command_head,
                f"{timeout_seconds:g}",
            )
            outcome = await run_process(
                argv,
                cwd=workspace,
                env=env,
                timeout_seconds=timeout_seconds,
            )
        except OSError as error:
            logger.error("Task %s failed to spawn %s: %s", task.id, command_head, error)
            return TaskResult(
                id=task.id,
                success=False,
                duration_ms=_elapsed_ms(started),
                error=f"Failed to spawn {command_head}: {error}",
                outcome=TaskOutcome.FAILED_SPAWN,
            )
        except ValueError as error:
            # malformed command line or arguments the OS cannot carry (NUL bytes, bad encoding)
            logger.error("Task %s has an invalid %s command line: %s", task.id, backend.name, error)
            return TaskResult(
                id=task.id,
                success=False,
                duration_ms=_elapsed_ms(started),
                error=f"Invalid command line for {backend.name}: {error}",
                outcome=TaskOutcome.INVALID_REQUEST,
            )

        duration_ms = _elapsed_ms(started, outcome.finished_at)
        if outcome.timed_out:
            logger.warning("Task %s timed out after %ss", task.id, f"{timeout_seconds:g}")
            return TaskResult(
                id=task.id,
                success=False,
                duration_ms=duration_ms,
                error=f"Timeout after {timeout_seconds:g}s",
                outcome=TaskOutcome.TIMED_OUT,
            )

        exit_code = outcome.exit_code if outcome.exit_code is not None else -1
        parsed = backend.parse_output(outcome.stdout, outcome.stderr, exit_code)
        if exit_code == 0:
            return TaskResult(
                id=task.id,
                success=True,
                duration_ms=duration_ms,
                output=parsed.output,
                tokens=parsed.tokens,
                outcome=TaskOutcome.SUCCESS,
            )
        return TaskResult(
            id=task.id,
            success=False,
            duration_ms=duration_ms,
            output=parsed.output or None,
            error=outcome.stderr.strip() or f"Exit code: {exit_code}",
            outcome=TaskOutcome.FAILED_EXIT,
        )

    def _backend_options(self, backend_name: str, mcp_config_path: Path | None) -> BackendOptions:
        if backend_name == "claude":
            claude = self.cli_config.claude
            return BackendOptions(
                mcp_config_path=mcp_config_path,
                allow_all_tools=claude.allow_all_tools,
                max_turns=claude.max_turns,
                model=claude.model,
            )
        copilot = self.cli_config.copilot
        return BackendOptions(
            mcp_config_path=mcp_config_path,
            allow_all_tools=copilot.allow_all_tools,
            allow_all_paths=copilot.allow_all_paths,
            model=copilot.model,
        )


def _elapsed_ms(started: float, finished: float | None = None) -> int:
    end = time.monotonic() if finished is None else finished
    return max(0, int((end - started) * 1000))
