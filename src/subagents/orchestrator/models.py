"""Domain models for sub-agent task execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

MAX_TASKS_PER_BATCH = 10


class ContextMode(str, Enum):
    """How a referenced file is rendered into the prompt."""

    FULL = "full"
    SUMMARY = "summary"
    GREP = "grep"


class TaskOutcome(str, Enum):
    """Terminal states of one process-runner invocation."""

    SUCCESS = "success"
    FAILED_EXIT = "failed_exit"
    FAILED_SPAWN = "failed_spawn"
    TIMED_OUT = "timed_out"
    INVALID_REQUEST = "invalid_request"


class FailureClass(str, Enum):
    """Normalized failure classes used by the retry policy."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    SPAWN = "spawn"
    NON_RETRYABLE = "non_retryable"


@dataclass(slots=True, frozen=True)
class FileContext:
    """One file reference attached to a task."""

    path: str
    mode: ContextMode = ContextMode.FULL
    pattern: str | None = None
    hint: str | None = None


@dataclass(slots=True, frozen=True)
class TaskContext:
    """File references plus inline key/value data."""

    files: tuple[FileContext, ...] = ()
    inline_data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Task:
    """One caller-submitted unit of agent work."""

    id: str
    prompt: str
    context: TaskContext | None = None
    mcp_servers: tuple[str, ...] = ()
    workspace: str | None = None
    timeout_seconds: float | None = None
    backend: str | None = None


@dataclass(slots=True, frozen=True)
class TokenUsage:
    """Token counts reported by a backend."""

    input_tokens: int
    output_tokens: int


@dataclass(slots=True)
class TaskResult:
    """Outcome of one task (final attempt when retried)."""

    id: str
    success: bool
    duration_ms: int
    output: str | None = None
    error: str | None = None
    tokens: TokenUsage | None = None
    outcome: TaskOutcome | None = None
    backend: str | None = None
    mcp_servers_requested: tuple[str, ...] = ()
    context_files_read: tuple[str, ...] = ()
    attempts: int = 1


@dataclass(slots=True)
class BatchResult:
    """Aggregate report over one batch, in input order."""

    completed: int
    failed: int
    total: int
    results: list[TaskResult]
    total_duration_ms: int

    @classmethod
    def from_results(cls, results: list[TaskResult], *, total_duration_ms: int) -> BatchResult:
        completed = sum(1 for result in results if result.success)
        return cls(
            completed=completed,
            failed=len(results) - completed,
            total=len(results),
            results=results,
            total_duration_ms=total_duration_ms,
        )
