"""Fixed-delay retry of transient task failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from subagents.orchestrator.failure_classifier import classify_task_failure
from subagents.orchestrator.lifecycle import ACTIVE_TASKS, ActiveTaskSet
from subagents.orchestrator.models import Task, TaskResult

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 2
DEFAULT_DELAY_SECONDS = 2.0

TaskAttempt = Callable[[Task], Awaitable[TaskResult]]


def is_retryable_result(result: TaskResult) -> bool:
    """True for failures whose error text looks transient."""

    if result.success:
        return False
    return classify_task_failure(result.error).retryable


async def run_with_retry(  # noqa: PLR0913
    attempt: TaskAttempt,
    task: Task,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delay_seconds: float = DEFAULT_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    active_tasks: ActiveTaskSet = ACTIVE_TASKS,
) -> TaskResult:
    """Run one task, re-running it after a fixed delay while failures stay transient.

    Successes and non-retryable failures return immediately; a transient
    failure on the last allowed attempt is returned as the final result.
    """

    attempts_allowed = max(1, max_attempts)
    with active_tasks.track(task.id):
        attempt_number = 1
        while True:
            result = await attempt(task)
            result.attempts = attempt_number
            if attempt_number >= attempts_allowed or not is_retryable_result(result):
                return result
            logger.warning(
                "Retrying task %s after transient failure (attempt %d/%d): %s",
                task.id,
                attempt_number,
                attempts_allowed,
                result.error,
            )
            await sleep(delay_seconds)
            attempt_number += 1
