"""Local demo agent for CLI backend integration tests.

Accepts the flag sets of both supported CLIs and reacts to directive lines
embedded in the prompt:

- ``@sleep <seconds>``: sleep before answering
- ``@exit <code>``: exit with this code after answering
- ``@stderr <text>``: write text to stderr
- ``@tokens <in> <out>``: report usage
- ``@echo-prompt``: answer with the full prompt received
- ``@echo-mcp-config``: answer with the auxiliary-server config file contents
- ``@echo-flags``: answer with the CLI flags received, as JSON
- ``@spawn-sleeper <seconds> <pid-file>``: start a grandchild that sleeps and shares our pipes
- ``@fail-once <marker-path>``: fail with a connection reset unless the marker exists
"""

from __future__ import annotations

import argparse
import json
import os
import subprocess
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

ECHO_AGENT_VERSION = "echo-agent 1.0.0"


@dataclass(slots=True)
class _Directives:
    sleep_seconds: float = 0.0
    exit_code: int = 0
    stderr_lines: list[str] = field(default_factory=list)
    tokens: tuple[int, int] | None = None
    echo_prompt: bool = False
    echo_mcp_config: bool = False
    echo_flags: bool = False
    sleeper: tuple[float, Path] | None = None
    fail_once_marker: Path | None = None


def main(argv: list[str] | None = None) -> int:
    """Run local deterministic agent."""

    parser = argparse.ArgumentParser(prog="echo-agent")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("-p", "--prompt", dest="prompt", default=None)
    parser.add_argument("--output-format", default="text")
    parser.add_argument("--mcp-config", default=None)
    parser.add_argument("--additional-mcp-config", default=None)
    parser.add_argument("--model", default=None)
    parser.add_argument("--max-turns", default=None)
    args, unknown = parser.parse_known_args(argv)

    if args.version:
        print(ECHO_AGENT_VERSION)
        return 0
    if args.prompt is None:
        print("error: -p <prompt> is required", file=sys.stderr)
        return 2

    directives = _parse_directives(args.prompt)
    if directives.fail_once_marker is not None and not directives.fail_once_marker.exists():
        directives.fail_once_marker.write_text("failed once", "utf-8")
        print("Error: read ECONNRESET", file=sys.stderr)
        return 1
    if directives.sleeper is not None:
        _spawn_sleeper(*directives.sleeper)
    if directives.sleep_seconds > 0:
        time.sleep(directives.sleep_seconds)

    if directives.echo_prompt:
        reply = args.prompt
    elif directives.echo_mcp_config:
        reply = _read_mcp_config(args.mcp_config or args.additional_mcp_config)
    elif directives.echo_flags:
        reply = json.dumps(
            {
                "output_format": args.output_format,
                "model": args.model,
                "max_turns": args.max_turns,
                "mcp_config": args.mcp_config,
                "additional_mcp_config": args.additional_mcp_config,
                "other": unknown,
            },
            sort_keys=True,
        )
    else:
        reply = os.getenv("ECHO_AGENT_REPLY", "done")

    for line in directives.stderr_lines:
        print(line, file=sys.stderr)

    if args.output_format == "stream-json":
        _emit_stream_json(reply, directives.tokens)
    else:
        print(reply)
        if directives.tokens is not None:
            print(f"Usage: {directives.tokens[0]} in, {directives.tokens[1]} out")
    sys.stdout.flush()
    return directives.exit_code


def _parse_directives(prompt: str) -> _Directives:
    directives = _Directives()
    for raw_line in prompt.splitlines():
        line = raw_line.strip()
        if not line.startswith("@"):
            continue
        name, _, value = line.partition(" ")
        value = value.strip()
        if name == "@sleep":
            directives.sleep_seconds = float(value)
        elif name == "@exit":
            directives.exit_code = int(value)
        elif name == "@stderr":
            directives.stderr_lines.append(value)
        elif name == "@tokens":
            input_tokens, output_tokens = value.split()
            directives.tokens = (int(input_tokens), int(output_tokens))
        elif name == "@echo-prompt":
            directives.echo_prompt = True
        elif name == "@echo-mcp-config":
            directives.echo_mcp_config = True
        elif name == "@echo-flags":
            directives.echo_flags = True
        elif name == "@spawn-sleeper":
            seconds, pid_file = value.split(maxsplit=1)
            directives.sleeper = (float(seconds), Path(pid_file))
        elif name == "@fail-once":
            directives.fail_once_marker = Path(value)
    return directives


def _spawn_sleeper(seconds: float, pid_file: Path) -> None:
    sleeper = subprocess.Popen(  # noqa: S603
        [sys.executable, "-c", f"import time; time.sleep({seconds})"],
    )
    pid_file.write_text(str(sleeper.pid), "utf-8")


def _read_mcp_config(raw_path: str | None) -> str:
    if not raw_path:
        return "{}"
    return Path(raw_path.removeprefix("@")).read_text("utf-8").strip()


def _emit_stream_json(reply: str, tokens: tuple[int, int] | None) -> None:
    events: list[dict[str, object]] = [
        {"type": "system", "subtype": "init"},
        {
            "type": "assistant",
            "message": {"role": "assistant", "content": [{"type": "text", "text": reply}]},
        },
    ]
    result: dict[str, object] = {"type": "result", "subtype": "success", "result": reply}
    if tokens is not None:
        result["usage"] = {"input_tokens": tokens[0], "output_tokens": tokens[1]}
    events.append(result)
    for event in events:
        print(json.dumps(event))


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
