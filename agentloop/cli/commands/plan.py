"""agentloop plan command."""

import asyncio
import uuid
from pathlib import Path
from typing import Tuple

import click

from agentloop.orchestrator.orchestrator import build_orchestrator

from .common import console, get_config, render_plan_table, setup_logging


@click.command()
@click.argument("request")
@click.option(
    "--input-file",
    "-i",
    "input_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File the plan may use (repeatable)",
)
@click.pass_context
def plan_command(ctx: click.Context, request: str, input_files: Tuple[Path, ...]) -> None:
    """Create a plan for REQUEST without executing it.

    The plan is saved to the plans directory when plan saving is enabled.
    """
    config = get_config(ctx)
    setup_logging(config, bool((ctx.find_root().obj or {}).get("verbose")))

    orchestrator = build_orchestrator(config)
    task_id = f"plan-{uuid.uuid4().hex[:8]}"
    plan = asyncio.run(
        orchestrator.planner.create_plan(
            request, [f.name for f in input_files], task_id=task_id
        )
    )

    console.print(render_plan_table(plan))
    if orchestrator.planner.plan_storage is not None:
        console.print(f"[dim]Saved as {task_id} in {orchestrator.planner.plan_storage.plans_dir}[/dim]")
