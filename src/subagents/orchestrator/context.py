"""Prompt enrichment from declarative file references and inline data."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from subagents.orchestrator.models import ContextMode, FileContext, TaskContext

logger = logging.getLogger(__name__)

CONTEXT_HEADER = "[CONTEXT from parent agent]"
TASK_HEADER = "[TASK]"

GREP_MAX_MATCHES = 20
SUMMARY_EDGE_LINES = 5
SUMMARY_JSON_KEYS = 10


@dataclass(slots=True)
class RenderedFile:
    """One file reference rendered to prompt text."""

    path: str
    text: str
    read_ok: bool


@dataclass(slots=True)
class EnrichedPrompt:
    """Prompt sent to the backend plus the files actually consulted."""

    prompt: str
    files_read: tuple[str, ...]
    truncated_chars: int = 0


async def build_enriched_prompt(
    prompt: str,
    context: TaskContext | None,
    workspace: Path,
    *,
    max_context_chars: int,
) -> EnrichedPrompt:
    """Prefix the prompt with rendered file/inline context between section markers."""

    if context is None:
        return EnrichedPrompt(prompt=prompt, files_read=())

    parts: list[str] = []
    files_read: list[str] = []
    for file_context in context.files:
        rendered = await asyncio.to_thread(render_file_context, file_context, workspace)
        parts.append(rendered.text)
        if rendered.read_ok:
            files_read.append(rendered.path)
        if file_context.hint:
            parts.append(f"  → Hint: {file_context.hint}")

    if context.inline_data:
        parts.append(f"inline_data: {json.dumps(context.inline_data, indent=2, default=str)}")

    if not parts:
        return EnrichedPrompt(prompt=prompt, files_read=tuple(files_read))

    block, truncated = _truncate_block("\n\n".join(parts), max_chars=max_context_chars)
    if truncated:
        logger.debug("Context block truncated by %d chars", truncated)
    return EnrichedPrompt(
        prompt=f"{CONTEXT_HEADER}\n{block}\n\n{TASK_HEADER}\n{prompt}",
        files_read=tuple(files_read),
        truncated_chars=truncated,
    )


def render_file_context(file_context: FileContext, workspace: Path) -> RenderedFile:
    """Render one file reference; read errors become an inline placeholder."""

    full_path = Path(file_context.path)
    if not full_path.is_absolute():
        full_path = workspace / full_path

    label = _display_label(file_context.path)
    try:
        if file_context.mode is ContextMode.FULL:
            content = full_path.read_text("utf-8")
            text = f"{label}:\n{content}"
        elif file_context.mode is ContextMode.SUMMARY:
            text = _render_summary(label, full_path)
        elif file_context.mode is ContextMode.GREP:
            if not file_context.pattern:
                return RenderedFile(label, f"{label}: [grep mode requires pattern]", read_ok=False)
            text = _render_grep(label, full_path, file_context.pattern)
        else:
            return RenderedFile(label, f"{label}: [unknown mode: {file_context.mode}]", read_ok=False)
    except (OSError, ValueError) as error:
        logger.debug("Context file %s unreadable: %s", full_path, error)
        return RenderedFile(label, f"{label}: [error: {error}]", read_ok=False)
    return RenderedFile(label, text, read_ok=True)


def summarize_output(text: str, max_length: int = 500) -> str:
    """Keep head and tail of long output with an elision marker in between."""

    if len(text) <= max_length:
        return text
    half = max(max_length // 2 - 10, 0)
    head = text[:half]
    tail = text[-half:] if half else ""
    return f"{head}\n... ({len(text) - max_length} chars truncated) ...\n{tail}"


def _render_summary(label: str, full_path: Path) -> str:
    content = full_path.read_text("utf-8")
    if full_path.suffix.lower() == ".json":
        try:
            parsed = json.loads(content)
        except (ValueError, RecursionError):
            parsed = None
        if isinstance(parsed, dict):
            keys = list(parsed)
            shown = ", ".join(keys[:SUMMARY_JSON_KEYS])
            more = "..." if len(keys) > SUMMARY_JSON_KEYS else ""
            return f"{label} (JSON, {len(keys)} top-level keys): {shown}{more}"
        if isinstance(parsed, list):
            return f"{label} (JSON, {len(parsed)} items)"

    lines = content.split("\n")
    if len(lines) > SUMMARY_EDGE_LINES * 2:
        elided = len(lines) - SUMMARY_EDGE_LINES * 2
        preview = "\n".join(
            [
                *lines[:SUMMARY_EDGE_LINES],
                f"... ({elided} lines) ...",
                *lines[-SUMMARY_EDGE_LINES:],
            ],
        )
    else:
        preview = content
    return f"{label} ({len(lines)} lines):\n{preview}"


def _render_grep(label: str, full_path: Path, pattern: str) -> str:
    matcher = _compile_pattern(pattern)
    matches: list[str] = []
    with full_path.open("r", encoding="utf-8", errors="replace") as handle:
        for line in handle:
            if matcher.search(line):
                matches.append(line.rstrip("\n"))
                if len(matches) >= GREP_MAX_MATCHES:
                    break
    body = "\n".join(matches) if matches else "[no matches]"
    return f'{label} (grep "{pattern}"):\n{body}'


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return re.compile(re.escape(pattern), re.IGNORECASE)


def _display_label(path: str) -> str:
    # argv cannot carry NUL bytes or lone surrogates
    return path.encode("utf-8", "backslashreplace").decode("utf-8").replace("\x00", "\\x00")


def _truncate_block(block: str, *, max_chars: int) -> tuple[str, int]:
    if len(block) <= max_chars:
        return block, 0
    cut = len(block) - max_chars
    return f"{block[:max_chars]}\n... [context truncated: {cut} chars omitted]", cut
