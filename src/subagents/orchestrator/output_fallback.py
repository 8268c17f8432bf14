"""Best-effort output recovery from newline-delimited JSON agent streams."""

from __future__ import annotations

import json
from dataclasses import dataclass

from subagents.orchestrator.models import TokenUsage
from subagents.orchestrator.usage import usage_from_payload


@dataclass(slots=True)
class StreamRecovery:
    """What could be recovered from a stream-json transcript."""

    text: str
    tokens: TokenUsage | None
    structured: bool


def recover_stream_output(stdout_text: str) -> StreamRecovery:
    """Extract the final assistant text and usage from stream-json stdout.

    Lines that are not JSON objects are ignored; if no line parses the raw
    stripped stdout is returned so the caller still sees what the agent said.
    """

    raw = stdout_text.strip()
    assistant_text = ""
    result_text = ""
    tokens: TokenUsage | None = None
    parsed_any = False

    for line in raw.splitlines():
        event = _try_load_dict(line.strip())
        if event is None:
            continue
        parsed_any = True
        event_type = event.get("type")
        if event_type == "assistant":
            text = _assistant_text(event.get("message"))
            if text:
                assistant_text = text
        elif event_type == "result":
            if isinstance(event.get("result"), str) and event["result"].strip():
                result_text = event["result"].strip()
            usage = usage_from_payload(event.get("usage"))
            if usage is not None:
                tokens = usage

    if not parsed_any:
        return StreamRecovery(text=raw, tokens=None, structured=False)
    return StreamRecovery(
        text=result_text or assistant_text or raw,
        tokens=tokens,
        structured=True,
    )


def _assistant_text(message: object) -> str:
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if not isinstance(content, list):
        return ""
    blocks = [
        block["text"]
        for block in content
        if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
    ]
    return "\n".join(blocks).strip()


def _try_load_dict(raw: str) -> dict[str, object] | None:
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
