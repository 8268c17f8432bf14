from __future__ import annotations

import json
from pathlib import Path

import allure

from subagents.config import Settings
from subagents.orchestrator.backend import ClaudeBackend, CopilotBackend
from subagents.orchestrator.mcp_config import (
    ephemeral_config_path,
    filter_servers,
    is_temp_path,
    load_mcp_document,
    prepare_task_config,
    remove_ephemeral_config,
)

pytestmark = [
    allure.epic("Sub-agent Runtime"),
    allure.feature("Auxiliary Server Config"),
]


def test_load_mcp_document_handles_missing_and_invalid(tmp_path: Path) -> None:
    assert load_mcp_document(tmp_path / "missing.json") is None

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", "utf-8")
    assert load_mcp_document(broken) is None

    wrong_shape = tmp_path / "wrong.json"
    wrong_shape.write_text(json.dumps({"servers": {}}), "utf-8")
    assert load_mcp_document(wrong_shape) is None


def test_filter_servers_keeps_requested_known_names(shared_mcp_config: Path) -> None:
    document = load_mcp_document(shared_mcp_config)
    assert document is not None

    filtered = filter_servers(document, ["fetch", "unknown"])

    assert filtered == {"mcpServers": {"fetch": {"command": "uvx", "args": ["mcp-server-fetch"]}}}
    filtered["mcpServers"]["fetch"]["args"].append("mutated")
    assert document["mcpServers"]["fetch"]["args"] == ["mcp-server-fetch"]


def test_ephemeral_path_is_task_and_time_qualified(tmp_path: Path) -> None:
    path = ephemeral_config_path(tmp_path, "task/1", now_ms=1700000000123)
    assert path == tmp_path / "mcp_task_1_1700000000123.json"


def test_copilot_gets_no_file_without_requested_servers(
    settings: Settings,
    shared_mcp_config: Path,
) -> None:
    path = prepare_task_config(
        CopilotBackend(),
        shared_path=shared_mcp_config,
        requested=(),
        temp_dir=settings.orchestrator.temp_dir,
        task_id="a",
    )
    assert path is None


def test_copilot_gets_filtered_generic_copy(settings: Settings, shared_mcp_config: Path) -> None:
    original = shared_mcp_config.read_text("utf-8")
    path = prepare_task_config(
        CopilotBackend(),
        shared_path=shared_mcp_config,
        requested=("playwright",),
        temp_dir=settings.orchestrator.temp_dir,
        task_id="a",
    )

    assert path is not None
    assert path.parent == settings.orchestrator.temp_dir
    assert path.name.startswith("mcp_a_")
    written = json.loads(path.read_text("utf-8"))
    assert list(written["mcpServers"]) == ["playwright"]
    assert written["mcpServers"]["playwright"]["tools"] == ["*"]
    assert shared_mcp_config.read_text("utf-8") == original


def test_claude_always_gets_transformed_copy(settings: Settings, shared_mcp_config: Path) -> None:
    path = prepare_task_config(
        ClaudeBackend(),
        shared_path=shared_mcp_config,
        requested=(),
        temp_dir=settings.orchestrator.temp_dir,
        task_id="b",
    )

    assert path is not None
    assert path != shared_mcp_config
    written = json.loads(path.read_text("utf-8"))
    assert set(written["mcpServers"]) == {"playwright", "filesystem", "fetch"}
    assert written["mcpServers"]["playwright"] == {
        "command": "npx",
        "args": ["@playwright/mcp@latest"],
    }
    assert written["mcpServers"]["filesystem"]["type"] == "stdio"
    assert all("tools" not in server for server in written["mcpServers"].values())


def test_no_shared_config_means_no_file(settings: Settings) -> None:
    path = prepare_task_config(
        ClaudeBackend(),
        shared_path=settings.orchestrator.mcp_config_path,
        requested=("playwright",),
        temp_dir=settings.orchestrator.temp_dir,
        task_id="c",
    )
    assert path is None


def test_is_temp_path_requires_strict_containment(tmp_path: Path) -> None:
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    assert is_temp_path(temp_dir / "mcp_a_1.json", temp_dir)
    assert not is_temp_path(temp_dir, temp_dir)
    assert not is_temp_path(tmp_path / "tmp-other" / "mcp_a_1.json", temp_dir)
    assert not is_temp_path(temp_dir / ".." / "config.json", temp_dir)


def test_remove_ephemeral_config_never_touches_files_outside_temp(
    settings: Settings,
    shared_mcp_config: Path,
) -> None:
    temp_dir = settings.orchestrator.temp_dir
    ephemeral = temp_dir / "mcp_a_1.json"
    ephemeral.write_text("{}", "utf-8")

    remove_ephemeral_config(ephemeral, temp_dir)
    remove_ephemeral_config(shared_mcp_config, temp_dir)
    remove_ephemeral_config(None, temp_dir)
    remove_ephemeral_config(temp_dir / "already-gone.json", temp_dir)

    assert not ephemeral.exists()
    assert shared_mcp_config.exists()
