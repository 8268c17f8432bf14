"""Per-task auxiliary-server ("MCP") config files.

The shared document in the config dir is read-only; every task that needs a
narrowed or backend-specific copy gets its own ephemeral file in the temp dir.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from subagents.orchestrator.backend.base import CliBackend

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def load_mcp_document(path: Path) -> dict[str, Any] | None:
    """Read the shared generic document; None when missing or invalid."""

    try:
        payload = json.loads(path.read_text("utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as error:
        logger.warning("Ignoring unreadable MCP config %s: %s", path, error)
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get("mcpServers"), dict):
        logger.warning("Ignoring MCP config without mcpServers object: %s", path)
        return None
    return payload


def filter_servers(document: dict[str, Any], names: Iterable[str]) -> dict[str, Any]:
    """Keep only the requested servers; unknown names are skipped."""

    servers = document.get("mcpServers", {})
    filtered: dict[str, Any] = {}
    for name in names:
        if name in servers:
            filtered[name] = json.loads(json.dumps(servers[name]))
        else:
            logger.debug("Requested MCP server %r not present in shared config", name)
    return {"mcpServers": filtered}


def ephemeral_config_path(temp_dir: Path, task_id: str, *, now_ms: int | None = None) -> Path:
    """Temp-scoped file name qualified by task id and epoch milliseconds."""

    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    safe_id = _UNSAFE_FILENAME_CHARS.sub("_", task_id) or "task"
    return temp_dir / f"mcp_{safe_id}_{stamp}.json"


def write_ephemeral_config(document: dict[str, Any], *, temp_dir: Path, task_id: str) -> Path:
    """Write a per-task config document and return its path."""

    path = ephemeral_config_path(temp_dir, task_id)
    path.write_text(json.dumps(document, indent=2), "utf-8")
    return path


def prepare_task_config(
    backend: CliBackend,
    *,
    shared_path: Path,
    requested: tuple[str, ...],
    temp_dir: Path,
    task_id: str,
) -> Path | None:
    """Write the ephemeral config this backend needs for one task, if any.

    Backends that load their own default servers only get a file when
    specific servers were requested; stricter backends always get a
    transformed copy so the shared file is never handed over untransformed.
    """

    if backend.inherits_default_mcp_config and not requested:
        return None
    document = load_mcp_document(shared_path)
    if document is None:
        return None
    selected = filter_servers(document, requested) if requested else document
    transformed = backend.transform_mcp_config(selected)
    try:
        return write_ephemeral_config(transformed, temp_dir=temp_dir, task_id=task_id)
    except OSError as error:
        logger.warning("Failed to write MCP config for task %s: %s", task_id, error)
        return None


def is_temp_path(path: Path, temp_dir: Path) -> bool:
    """True when path lies strictly inside temp_dir."""

    root = temp_dir.resolve()
    target = path.resolve()
    return target != root and root in target.parents


def remove_ephemeral_config(path: Path | None, temp_dir: Path) -> None:
    """Delete a per-task config file; anything outside temp_dir is left alone."""

    if path is None:
        return
    if not is_temp_path(path, temp_dir):
        logger.warning("Refusing to delete non-temp MCP config %s", path)
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as error:
        logger.warning("Failed to remove MCP config %s: %s", path, error)
