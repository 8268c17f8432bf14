"""JSON contracts for batch requests and reports."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from subagents.orchestrator.backend import BACKEND_REGISTRY
from subagents.orchestrator.models import (
    MAX_TASKS_PER_BATCH,
    BatchResult,
    ContextMode,
    FileContext,
    Task,
    TaskContext,
    TaskResult,
)


class BatchValidationError(ValueError):
    """Batch request rejected before any task was dispatched."""


@dataclass(slots=True)
class BatchRequest:
    """Validated batch submission."""

    tasks: list[Task]
    default_timeout_seconds: float | None = None
    default_workspace: str | None = None


def ensure_unique_ids(tasks: Iterable[Task]) -> None:
    """Reject batches where two tasks share an id."""

    seen: set[str] = set()
    duplicates: list[str] = []
    for task in tasks:
        if task.id in seen and task.id not in duplicates:
            duplicates.append(task.id)
        seen.add(task.id)
    if duplicates:
        raise BatchValidationError(f"Duplicate task ids: {', '.join(duplicates)}")


def load_batch_request(path: Path) -> BatchRequest:
    """Read and validate a batch request JSON file."""

    try:
        payload = json.loads(path.read_text("utf-8"))
    except (OSError, json.JSONDecodeError) as error:
        raise BatchValidationError(f"Invalid batch request at {path}: {error}") from error
    return parse_batch_request(payload)


def parse_batch_request(payload: Any) -> BatchRequest:
    """Validate a JSON-shaped batch request; raise BatchValidationError naming the field."""

    if not isinstance(payload, dict):
        raise BatchValidationError("Batch request must be a JSON object")
    raw_tasks = payload.get("tasks")
    if not isinstance(raw_tasks, list) or not raw_tasks:
        raise BatchValidationError("tasks must be a non-empty array")
    if len(raw_tasks) > MAX_TASKS_PER_BATCH:
        raise BatchValidationError(
            f"tasks accepts at most {MAX_TASKS_PER_BATCH} items, got {len(raw_tasks)}",
        )

    tasks = [_parse_task(raw, index) for index, raw in enumerate(raw_tasks)]
    ensure_unique_ids(tasks)

    default_timeout = payload.get("default_timeout_seconds")
    if default_timeout is not None and not _is_positive_number(default_timeout):
        raise BatchValidationError("default_timeout_seconds must be a positive number")
    default_workspace = payload.get("default_workspace")
    if default_workspace is not None and not isinstance(default_workspace, str):
        raise BatchValidationError("default_workspace must be a string")

    return BatchRequest(
        tasks=tasks,
        default_timeout_seconds=float(default_timeout) if default_timeout is not None else None,
        default_workspace=default_workspace,
    )


def task_result_to_dict(result: TaskResult) -> dict[str, Any]:
    """Render one result; unset optional fields are omitted."""

    payload: dict[str, Any] = {
        "id": result.id,
        "success": result.success,
        "duration_ms": result.duration_ms,
    }
    if result.output is not None:
        payload["output"] = result.output
    if result.error is not None:
        payload["error"] = result.error
    if result.tokens is not None:
        payload["tokens"] = {
            "input": result.tokens.input_tokens,
            "output": result.tokens.output_tokens,
        }
    if result.backend is not None:
        payload["backend"] = result.backend
    if result.outcome is not None:
        payload["outcome"] = result.outcome.value
    if result.mcp_servers_requested:
        payload["mcp_servers_requested"] = list(result.mcp_servers_requested)
    if result.context_files_read:
        payload["context_files_read"] = list(result.context_files_read)
    payload["attempts"] = result.attempts
    return payload


def batch_result_to_dict(batch: BatchResult) -> dict[str, Any]:
    """Render the aggregate report in its JSON shape."""

    return {
        "completed": batch.completed,
        "failed": batch.failed,
        "total": batch.total,
        "results": [task_result_to_dict(result) for result in batch.results],
        "total_duration_ms": batch.total_duration_ms,
    }


def _parse_task(raw: Any, index: int) -> Task:  # noqa: C901
    field_prefix = f"tasks[{index}]"
    if not isinstance(raw, dict):
        raise BatchValidationError(f"{field_prefix} must be an object")

    task_id = raw.get("id")
    if not isinstance(task_id, str) or not task_id.strip():
        raise BatchValidationError(f"{field_prefix}.id must be a non-empty string")
    prompt = raw.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise BatchValidationError(f"{field_prefix}.prompt must be a non-empty string")

    mcp_servers = raw.get("mcp_servers", [])
    if not isinstance(mcp_servers, list) or not all(isinstance(name, str) for name in mcp_servers):
        raise BatchValidationError(f"{field_prefix}.mcp_servers must be an array of strings")

    workspace = raw.get("workspace")
    if workspace is not None and not isinstance(workspace, str):
        raise BatchValidationError(f"{field_prefix}.workspace must be a string")

    timeout_seconds = raw.get("timeout_seconds")
    if timeout_seconds is not None and not _is_positive_number(timeout_seconds):
        raise BatchValidationError(f"{field_prefix}.timeout_seconds must be a positive number")

    backend = raw.get("cli_backend", raw.get("backend"))
    if backend is not None:
        if not isinstance(backend, str) or backend.strip().lower() not in BACKEND_REGISTRY:
            raise BatchValidationError(
                f"{field_prefix}.cli_backend must be one of {', '.join(BACKEND_REGISTRY)}, "
                f"got {backend!r}",
            )
        backend = backend.strip().lower()

    return Task(
        id=task_id,
        prompt=prompt,
        context=_parse_context(raw.get("context"), field_prefix=f"{field_prefix}.context"),
        mcp_servers=tuple(mcp_servers),
        workspace=workspace,
        timeout_seconds=float(timeout_seconds) if timeout_seconds is not None else None,
        backend=backend,
    )


def _parse_context(raw: Any, *, field_prefix: str) -> TaskContext | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise BatchValidationError(f"{field_prefix} must be an object")

    raw_files = raw.get("files", [])
    if not isinstance(raw_files, list):
        raise BatchValidationError(f"{field_prefix}.files must be an array")
    files = tuple(
        _parse_file_context(item, field_prefix=f"{field_prefix}.files[{index}]")
        for index, item in enumerate(raw_files)
    )

    inline_data = raw.get("inline_data", {})
    if not isinstance(inline_data, dict):
        raise BatchValidationError(f"{field_prefix}.inline_data must be an object")
    return TaskContext(files=files, inline_data=inline_data)


def _parse_file_context(raw: Any, *, field_prefix: str) -> FileContext:
    if not isinstance(raw, dict):
        raise BatchValidationError(f"{field_prefix} must be an object")
    path = raw.get("path")
    if not isinstance(path, str) or not path.strip():
        raise BatchValidationError(f"{field_prefix}.path must be a non-empty string")
    mode_raw = raw.get("mode", ContextMode.FULL.value)
    try:
        mode = ContextMode(mode_raw)
    except ValueError as error:
        allowed = ", ".join(item.value for item in ContextMode)
        raise BatchValidationError(f"{field_prefix}.mode must be one of {allowed}") from error
    pattern = raw.get("pattern")
    if pattern is not None and not isinstance(pattern, str):
        raise BatchValidationError(f"{field_prefix}.pattern must be a string")
    hint = raw.get("hint")
    if hint is not None and not isinstance(hint, str):
        raise BatchValidationError(f"{field_prefix}.hint must be a string")
    return FileContext(path=path, mode=mode, pattern=pattern, hint=hint)


def _is_positive_number(value: object) -> bool:
    return not isinstance(value, bool) and isinstance(value, int | float) and value > 0
