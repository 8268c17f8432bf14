"""Batch fan-out of tasks to CLI sub-agents."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from pathlib import Path

from subagents.config import Settings
from subagents.orchestrator.contracts import BatchValidationError, ensure_unique_ids
from subagents.orchestrator.models import MAX_TASKS_PER_BATCH, BatchResult, Task, TaskResult
from subagents.orchestrator.retry import run_with_retry
from subagents.orchestrator.runner import SubagentRunner

logger = logging.getLogger(__name__)


async def run_batch(
    tasks: Sequence[Task],
    default_timeout_seconds: float | None = None,
    default_workspace: Path | str | None = None,
    *,
    settings: Settings | None = None,
    runner: SubagentRunner | None = None,
) -> BatchResult:
    """Run all tasks concurrently and report results in input order.

    Duplicate ids raise BatchValidationError before anything is spawned;
    every other failure is reported in the task's own result slot.
    """

    ensure_unique_ids(tasks)
    if len(tasks) > MAX_TASKS_PER_BATCH:
        raise BatchValidationError(
            f"At most {MAX_TASKS_PER_BATCH} tasks per batch, got {len(tasks)}",
        )

    if runner is None:
        runner = SubagentRunner(settings or Settings.from_env())
    orchestrator = runner.settings.orchestrator
    timeout_seconds = (
        default_timeout_seconds
        if default_timeout_seconds is not None
        else orchestrator.default_timeout_seconds
    )
    workspace = Path(default_workspace) if default_workspace else orchestrator.default_workspace

    async def _attempt(task: Task) -> TaskResult:
        return await runner.run_task(
            task,
            default_timeout_seconds=timeout_seconds,
            default_workspace=workspace,
        )

    started = time.monotonic()
    settled = await asyncio.gather(
        *(
            run_with_retry(
                _attempt,
                task,
                max_attempts=orchestrator.retry_max_attempts,
                delay_seconds=orchestrator.retry_delay_seconds,
                active_tasks=runner.active_tasks,
            )
            for task in tasks
        ),
        return_exceptions=True,
    )

    results: list[TaskResult] = []
    for task, outcome in zip(tasks, settled, strict=True):
        if isinstance(outcome, TaskResult):
            results.append(outcome)
            continue
        if not isinstance(outcome, Exception):
            raise outcome
        logger.error("Unexpected failure while running task %s: %s", task.id, outcome)
        results.append(
            TaskResult(
                id=task.id,
                success=False,
                duration_ms=0,
                error=str(outcome) or type(outcome).__name__,
                mcp_servers_requested=task.mcp_servers,
            ),
        )

    batch = BatchResult.from_results(
        results,
        total_duration_ms=int((time.monotonic() - started) * 1000),
    )
    logger.info(
        "Batch finished: completed=%d failed=%d total=%d duration_ms=%d",
        batch.completed,
        batch.failed,
        batch.total,
        batch.total_duration_ms,
    )
    return batch
