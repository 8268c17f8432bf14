"""Usage extraction helpers for CLI agent output streams."""

from __future__ import annotations

import re
from typing import Any

from subagents.orchestrator.models import TokenUsage

_IN_OUT_TOKENS = re.compile(r"(\d[\d,]*)\s*in,\s*(\d[\d,]*)\s*out", re.IGNORECASE)


def extract_in_out_tokens(text: str) -> TokenUsage | None:
    """Recover `<N> in, <N> out` usage from textual output; None when absent."""

    match = _IN_OUT_TOKENS.search(text)
    if match is None:
        return None
    input_tokens = _parse_count(match.group(1))
    output_tokens = _parse_count(match.group(2))
    if input_tokens is None or output_tokens is None:
        return None
    return TokenUsage(input_tokens=input_tokens, output_tokens=output_tokens)


def usage_from_payload(raw: Any) -> TokenUsage | None:
    """Read `input_tokens`/`output_tokens` from a structured usage object."""

    if not isinstance(raw, dict):
        return None
    input_tokens = _coerce_int(raw.get("input_tokens"))
    output_tokens = _coerce_int(raw.get("output_tokens"))
    if input_tokens is None and output_tokens is None:
        return None
    return TokenUsage(input_tokens=input_tokens or 0, output_tokens=output_tokens or 0)


def _parse_count(raw: str) -> int | None:
    digits = raw.replace(",", "").strip()
    if not digits.isdigit():
        return None
    return int(digits)


def _coerce_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    return None
