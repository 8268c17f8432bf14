"""GitHub Copilot CLI backend.

Flags used in programmatic mode:

- ``-p <prompt>``: non-interactive prompt
- ``--allow-all-tools`` / ``--allow-all-paths``: opt-in auto-approval
- ``--additional-mcp-config @<file>``: extra servers on top of ~/.copilot config
- ``--model <model>``
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from subagents.orchestrator.backend.base import BackendOptions, ParsedOutput
from subagents.orchestrator.usage import extract_in_out_tokens

# Copilot does not reliably start stdio servers in non-interactive mode, so
# browser automation is described to the agent as a scriptable workaround.
BROWSER_AUTOMATION_FALLBACK = """
## Browser Automation (No MCP Tools Available)

You do NOT have browser_navigate or browser_snapshot MCP tools.
Use Node + Playwright directly (cross-platform):

```bash
node -e "const { chromium } = require('playwright'); (async () => { const browser = await chromium.launch({ headless: true }); const page = await browser.newPage(); await page.goto('YOUR_URL'); console.log('Title:', await page.title()); const content = await page.content(); console.log('Content:', content.slice(0, 2000)); await browser.close(); })().catch(err => { console.error(err); process.exit(1); });"
```
"""

PROMPT_FALLBACKS: dict[str, str] = {
    "playwright": BROWSER_AUTOMATION_FALLBACK,
}


class CopilotBackend:
    """Invoke `copilot -p` and read plain-text output."""

    name = "copilot"
    default_command = "copilot"
    inherits_default_mcp_config = True

    def build_args(self, prompt: str, options: BackendOptions) -> list[str]:
        # --agent is never passed: custom agents restrict the built-in tool set.
        args = ["-p", prompt]
        if options.allow_all_tools:
            args.append("--allow-all-tools")
        if options.allow_all_paths:
            args.append("--allow-all-paths")
        if options.mcp_config_path is not None:
            args.extend(["--additional-mcp-config", f"@{options.mcp_config_path}"])
        if options.model:
            args.extend(["--model", options.model])
        return args

    def build_env(self, mcp_config_path: Path | None, base_env: Mapping[str, str]) -> dict[str, str]:
        return dict(base_env)

    def parse_output(self, stdout: str, stderr: str, exit_code: int) -> ParsedOutput:
        return ParsedOutput(output=stdout.strip(), tokens=extract_in_out_tokens(stdout))

    def augment_prompt_for_mcp(self, prompt: str, mcp_servers: tuple[str, ...]) -> str:
        sections = [PROMPT_FALLBACKS[name] for name in mcp_servers if name in PROMPT_FALLBACKS]
        if not sections:
            return prompt
        return "\n\n".join([prompt, *sections])

    def transform_mcp_config(self, document: dict[str, Any]) -> dict[str, Any]:
        return document
