"""Redaction of credentials and e-mail addresses in audit previews."""

from __future__ import annotations

import re

PREVIEW_MAX_CHARS = 200

# Agent prompts routinely carry CLI tokens and API keys copied from shell sessions.
_BEARER = re.compile(r"(?i)\b(bearer)\s+[\w.\-]{8,}")
_API_TOKEN = re.compile(
    r"\b(?:sk-[A-Za-z0-9_\-]{8,}|gh[pousr]_[A-Za-z0-9]{16,}|github_pat_[A-Za-z0-9_]{16,})",
)
_ENV_SECRET = re.compile(
    r"(?i)\b(?:orchestrator|copilot|claude|github|gh|openai|anthropic|perplexity)\w*?_?(?:key|token)"
    r"\s*[:=]\s*['\"]?[^'\"\s]+['\"]?",
)
_QUERY_CREDENTIAL = re.compile(r"(?i)([?&](?:token|key|signature|auth))=[^&\s]+")
_EMAIL = re.compile(r"\b[\w.%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")


def sanitize_preview(text: str, *, max_chars: int = PREVIEW_MAX_CHARS) -> str:
    """Strip, redact, then clamp to max_chars."""

    redacted = text.strip()
    redacted = _BEARER.sub(r"\1 [redacted-token]", redacted)
    redacted = _API_TOKEN.sub("[redacted-token]", redacted)
    redacted = _ENV_SECRET.sub("[redacted-secret]", redacted)
    redacted = _QUERY_CREDENTIAL.sub(r"\1=[redacted]", redacted)
    redacted = _EMAIL.sub("[redacted-email]", redacted)
    return redacted[:max_chars]
