from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from subagents import __version__
from subagents.main import subagents

pytestmark = [
    allure.epic("Sub-agent Runtime"),
    allure.feature("CLI"),
]


@pytest.fixture()
def cli_env(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    echo_agent_command: str,
    child_env: dict[str, str],
) -> Path:
    config_dir = tmp_path / "config"
    monkeypatch.setenv("ORCHESTRATOR_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("ORCHESTRATOR_WORKSPACE", str(tmp_path))
    monkeypatch.setenv("ORCHESTRATOR_RETRY_DELAY_SECONDS", "0")
    monkeypatch.setenv("COPILOT_CLI", echo_agent_command)
    monkeypatch.setenv("CLAUDE_CLI", echo_agent_command)
    monkeypatch.setenv("PYTHONPATH", child_env["PYTHONPATH"])
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    monkeypatch.delenv("ORCHESTRATOR_DEFAULT_BACKEND", raising=False)
    monkeypatch.delenv("ECHO_AGENT_REPLY", raising=False)
    return config_dir


def _write_request(tmp_path: Path, payload: dict[str, object]) -> Path:
    path = tmp_path / "tasks.json"
    path.write_text(json.dumps(payload), "utf-8")
    return path


def test_run_prints_json_report(cli_env: Path, tmp_path: Path) -> None:
    request = _write_request(
        tmp_path,
        {
            "tasks": [
                {"id": "a", "prompt": "first"},
                {"id": "b", "prompt": "@tokens 10 4", "cli_backend": "claude"},
            ],
        },
    )

    result = CliRunner().invoke(subagents, ["run", str(request)])

    assert result.exit_code == 0, result.output
    report = json.loads(result.output)
    assert (report["completed"], report["failed"], report["total"]) == (2, 0, 2)
    assert [item["id"] for item in report["results"]] == ["a", "b"]
    assert report["results"][0]["output"] == "done"
    assert report["results"][1]["backend"] == "claude"
    assert report["results"][1]["tokens"] == {"input": 10, "output": 4}
    assert list((cli_env / "logs").glob("*.jsonl"))


def test_run_writes_report_file_and_fails_on_task_failure(cli_env: Path, tmp_path: Path) -> None:
    request = _write_request(
        tmp_path,
        {"tasks": [{"id": "ok", "prompt": "fine"}, {"id": "bad", "prompt": "@exit 3"}]},
    )
    report_path = tmp_path / "out" / "report.json"

    result = CliRunner().invoke(subagents, ["run", str(request), "--output", str(report_path)])

    assert result.exit_code == 1
    assert "Batch summary: completed=1 failed=1 total=2" in result.output
    assert "One or more tasks failed." in result.output
    report = json.loads(report_path.read_text("utf-8"))
    failed = report["results"][1]
    assert failed["id"] == "bad"
    assert failed["success"] is False
    assert failed["outcome"] == "failed_exit"


def test_run_rejects_duplicate_ids(cli_env: Path, tmp_path: Path) -> None:
    request = _write_request(
        tmp_path,
        {"tasks": [{"id": "a", "prompt": "1"}, {"id": "a", "prompt": "2"}]},
    )

    result = CliRunner().invoke(subagents, ["run", str(request)])

    assert result.exit_code == 1
    assert "Duplicate task ids: a" in result.output


def test_run_applies_default_timeout_option(cli_env: Path, tmp_path: Path) -> None:
    request = _write_request(tmp_path, {"tasks": [{"id": "slow", "prompt": "@sleep 5"}]})

    result = CliRunner().invoke(
        subagents,
        ["run", str(request), "--default-timeout-seconds", "0.2"],
    )

    assert result.exit_code == 1
    report = json.loads(result.output.split("Error:")[0])
    assert report["results"][0]["error"] == "Timeout after 0.2s"
    assert report["results"][0]["attempts"] == 2


def test_backends_lists_registry(cli_env: Path, echo_agent_command: str) -> None:
    result = CliRunner().invoke(subagents, ["backends"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0] == "Backends:"
    assert lines[1].startswith("  copilot (default): command=")
    assert lines[2].startswith("  claude: command=")
    assert "echo_agent" in lines[1]


def test_health_reports_backends(cli_env: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    result = CliRunner().invoke(subagents, ["health"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["healthy"] is True

    monkeypatch.setenv("COPILOT_CLI", str(tmp_path / "nope"))
    monkeypatch.setenv("CLAUDE_CLI", str(tmp_path / "nope"))
    result = CliRunner().invoke(subagents, ["health", "--timeout-seconds", "2"])
    assert result.exit_code == 1
    assert "No CLI backend is available." in result.output


def test_version_option() -> None:
    result = CliRunner().invoke(subagents, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output
