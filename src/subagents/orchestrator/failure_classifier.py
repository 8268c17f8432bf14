"""Deterministic task failure classification for the retry policy."""

from __future__ import annotations

from dataclasses import dataclass

from subagents.orchestrator.models import FailureClass

_TIMEOUT_PATTERNS: tuple[str, ...] = (
    "timeout",
    "timed out",
    "etimedout",
)
_CONNECTION_PATTERNS: tuple[str, ...] = (
    "econnreset",
    "connection reset",
    "econnrefused",
    "connection refused",
)
_SPAWN_PATTERNS: tuple[str, ...] = ("spawn",)


@dataclass(slots=True)
class TaskFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    matched_pattern: str | None

    @property
    def retryable(self) -> bool:
        return self.failure_class is not FailureClass.NON_RETRYABLE


def classify_task_failure(error: str | None) -> TaskFailureClassification:
    """Classify failure text into a retry class by case-insensitive substring match."""

    haystack = (error or "").lower()

    pattern = _first_match(haystack, _TIMEOUT_PATTERNS)
    if pattern is not None:
        return TaskFailureClassification(FailureClass.TIMEOUT, pattern)

    pattern = _first_match(haystack, _CONNECTION_PATTERNS)
    if pattern is not None:
        return TaskFailureClassification(FailureClass.CONNECTION, pattern)

    pattern = _first_match(haystack, _SPAWN_PATTERNS)
    if pattern is not None:
        return TaskFailureClassification(FailureClass.SPAWN, pattern)

    return TaskFailureClassification(FailureClass.NON_RETRYABLE, None)


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
