"""agentloop run command."""

import asyncio
import signal
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.panel import Panel

from agentloop.core.task_state import TaskStatus
from agentloop.orchestrator.orchestrator import Orchestrator, TaskResult, build_orchestrator

from .common import console, get_config, render_plan_table, setup_logging

STATUS_STYLES = {
    TaskStatus.COMPLETED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.IMPOSSIBLE: "red",
    TaskStatus.CANCELLED: "yellow",
}

EXIT_CANCELLED = 130


@click.command()
@click.argument("request")
@click.option(
    "--input-file",
    "-i",
    "input_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File to stage into the workspace (repeatable)",
)
@click.option("--max-attempts", type=click.IntRange(min=1), help="Attempts allowed per step")
@click.option(
    "--max-refinements", type=click.IntRange(min=0), help="How many times the task may be replanned"
)
@click.option("--no-refine", is_flag=True, help="Never replan after a failed step")
@click.pass_context
def run_command(
    ctx: click.Context,
    request: str,
    input_files: Tuple[Path, ...],
    max_attempts: Optional[int],
    max_refinements: Optional[int],
    no_refine: bool,
) -> None:
    """Plan and execute a natural-language REQUEST.

    Examples:
        agentloop run "Summarise sales.csv by region" -i sales.csv
        agentloop run "Convert report.md to HTML" --max-attempts 5
    """
    config = get_config(ctx)
    overrides = {}
    if max_attempts is not None:
        overrides["max_retry_attempts"] = max_attempts
    if max_refinements is not None:
        overrides["max_refinement_rounds"] = max_refinements
    if no_refine:
        overrides["refinement_enabled"] = False
    if overrides:
        config = config.model_copy(
            update={"agent": config.agent.model_copy(update=overrides)}
        )

    verbose = bool((ctx.find_root().obj or {}).get("verbose"))
    setup_logging(config, verbose)

    orchestrator = build_orchestrator(config)
    orchestrator.state_machine.add_listener(
        lambda task_id, from_state, to_state: console.print(
            f"[dim]{task_id}[/dim] {from_state.value} -> [bold]{to_state.value}[/bold]"
        )
    )

    result = asyncio.run(_run(orchestrator, request, [str(f) for f in input_files]))
    _print_result(result)

    if result.status == TaskStatus.CANCELLED:
        ctx.exit(EXIT_CANCELLED)
    if not result.success:
        ctx.exit(1)


async def _run(orchestrator: Orchestrator, request: str, input_files: list) -> TaskResult:
    """Run the request, turning Ctrl-C into a cooperative cancellation."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except (NotImplementedError, RuntimeError):
        # Signal handlers are unavailable on some platforms and threads
        pass

    try:
        return await orchestrator.run(request, input_files, cancel_event=cancel_event)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def _print_result(result: TaskResult) -> None:
    if result.plan is not None:
        console.print(render_plan_table(result.plan))

    style = STATUS_STYLES.get(result.status, "white")
    body = result.output if result.success else (result.explanation or "")
    console.print(
        Panel(
            body.strip() or "(no output)",
            title=f"[{style}]{result.status.value.upper()}[/{style}] {result.task_id}",
            subtitle=(
                f"{result.duration_seconds:.1f}s, plan v{result.plan_versions}, "
                f"{result.refinement_rounds} refinement(s)"
            ),
        )
    )

    if result.failures and not result.success:
        console.print("[bold]Failure history:[/bold]")
        for index, failure in enumerate(result.failures, 1):
            console.print(f"  {index}. {failure}")
