"""CLI entrypoint for subagents."""

import logging
import os
import sys
from pathlib import Path

import rich_click as click

from subagents import __version__
from subagents.config import ConfigError
from subagents.orchestrator.contracts import BatchValidationError
from subagents.orchestrator.controllers import (
    HealthCommand,
    OrchestratorCliController,
    RunBatchCommand,
)

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = OrchestratorCliController()


@click.group()
@click.version_option(version=__version__, prog_name="subagents")
def subagents() -> None:
    """Run batches of tasks on external CLI agents (copilot, claude)."""

    _configure_logging()


@subagents.command("run")
@click.argument("tasks_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--default-timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Batch default timeout; overrides the request and ORCHESTRATOR_DEFAULT_TIMEOUT_SECONDS.",
)
@click.option(
    "--default-workspace",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Working directory for tasks without their own workspace.",
)
@click.option(
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the JSON report to this file instead of stdout.",
)
def run(
    tasks_json: Path,
    default_timeout_seconds: float | None,
    default_workspace: Path | None,
    output_path: Path | None,
) -> None:
    """Run a batch request (JSON with a `tasks` array) and print the report."""

    try:
        result = ORCHESTRATOR_CONTROLLER.run_batch(
            RunBatchCommand(
                tasks_path=tasks_json,
                default_timeout_seconds=default_timeout_seconds,
                default_workspace=default_workspace,
                output_path=output_path,
            ),
        )
    except (BatchValidationError, ConfigError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("One or more tasks failed.")


@subagents.command("backends")
def backends() -> None:
    """List registered backends and the command each resolves to."""

    try:
        lines = ORCHESTRATOR_CONTROLLER.backends()
    except ConfigError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@subagents.command("health")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=5.0,
    show_default=True,
    help="Timeout for each `--version` probe.",
)
def health(timeout_seconds: float) -> None:
    """Probe every backend with `--version` and print a JSON report."""

    try:
        result = ORCHESTRATOR_CONTROLLER.health(HealthCommand(timeout_seconds=timeout_seconds))
    except ConfigError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("No CLI backend is available.")


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(level_name)
    logging.basicConfig(
        level=level if isinstance(level, int) else logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    subagents()
