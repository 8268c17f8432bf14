"""Append-only JSONL audit trail of task attempts."""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from subagents.orchestrator.context import summarize_output
from subagents.orchestrator.models import Task, TaskResult
from subagents.orchestrator.sanitization import sanitize_preview

logger = logging.getLogger(__name__)

PROMPT_PREVIEW_CHARS = 200
OUTPUT_PREVIEW_CHARS = 200


def build_audit_record(
    task: Task,
    result: TaskResult,
    *,
    backend: str,
    enriched_prompt_length: int,
    now: datetime | None = None,
) -> dict[str, Any]:
    """One audit line for a finished attempt."""

    timestamp = now or datetime.now(tz=UTC)
    output_preview = (
        sanitize_preview(
            summarize_output(result.output, OUTPUT_PREVIEW_CHARS),
            max_chars=OUTPUT_PREVIEW_CHARS,
        )
        if result.output
        else None
    )
    return {
        "timestamp": timestamp.isoformat(),
        "task_id": task.id,
        "backend": backend,
        "prompt_preview": sanitize_preview(task.prompt[:PROMPT_PREVIEW_CHARS]),
        "enriched_prompt_length": enriched_prompt_length,
        "mcp_servers": list(task.mcp_servers),
        "success": result.success,
        "outcome": result.outcome.value if result.outcome is not None else None,
        "duration_ms": result.duration_ms,
        "output_preview": output_preview,
        "error": result.error,
    }


class AuditLog:
    """Daily JSONL files under a log directory; write failures never fail a task."""

    def __init__(self, log_dir: Path, *, enabled: bool = True) -> None:
        self.log_dir = log_dir
        self.enabled = enabled
        self._lock = threading.Lock()

    def path_for(self, timestamp: datetime) -> Path:
        return self.log_dir / f"{timestamp.date().isoformat()}.jsonl"

    def append(self, record: dict[str, Any]) -> None:
        if not self.enabled:
            return
        try:
            timestamp = datetime.fromisoformat(str(record["timestamp"]))
        except (KeyError, ValueError):
            timestamp = datetime.now(tz=UTC)
        line = json.dumps(record, ensure_ascii=False) + "\n"
        try:
            with self._lock:
                self.log_dir.mkdir(parents=True, exist_ok=True)
                with self.path_for(timestamp).open("a", encoding="utf-8") as handle:
                    handle.write(line)
        except OSError as error:
            logger.warning("Failed to write audit record for task %s: %s", record.get("task_id"), error)
