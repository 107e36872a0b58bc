"""agentloop plans commands."""

from typing import Optional

import click
from rich.table import Table

from agentloop.orchestrator.plan_storage import PlanStorage

from .common import console, get_config, render_plan_table


def _storage(ctx: click.Context) -> PlanStorage:
    return PlanStorage(get_config(ctx).get_plans_dir())


@click.group()
def plans_group() -> None:
    """Inspect and remove saved plans."""
    pass


@plans_group.command("list")
@click.pass_context
def list_command(ctx: click.Context) -> None:
    """List tasks with saved plans."""
    storage = _storage(ctx)
    task_ids = storage.list_plans()

    if not task_ids:
        console.print(f"[yellow]No saved plans in {storage.plans_dir}[/yellow]")
        return

    table = Table(title="Saved Plans")
    table.add_column("Task ID", style="cyan", no_wrap=True)
    table.add_column("Versions", justify="right", style="magenta")
    table.add_column("Latest")

    for task_id in task_ids:
        table.add_row(
            task_id,
            str(len(storage.list_versions(task_id))),
            storage.get_plan_summary(task_id) or "[red]unreadable[/red]",
        )

    console.print(table)


@plans_group.command("show")
@click.argument("task_id")
@click.option("--version", "-V", "version", type=int, help="Plan version (latest by default)")
@click.pass_context
def show_command(ctx: click.Context, task_id: str, version: Optional[int]) -> None:
    """Show the saved plan for TASK_ID."""
    storage = _storage(ctx)

    if not storage.plan_exists(task_id):
        console.print(f"[red]No saved plan for task '{task_id}'[/red]")
        ctx.exit(1)

    plan = storage.load_plan(task_id, version)
    if plan is None:
        which = f"v{version}" if version is not None else "latest"
        console.print(f"[red]Plan {which} of '{task_id}' is missing or unreadable[/red]")
        ctx.exit(1)

    console.print(render_plan_table(plan))


@plans_group.command("delete")
@click.argument("task_id")
@click.pass_context
def delete_command(ctx: click.Context, task_id: str) -> None:
    """Delete every saved plan version for TASK_ID."""
    if not _storage(ctx).delete_plan(task_id):
        console.print(f"[yellow]No saved plan for task '{task_id}'[/yellow]")
        ctx.exit(1)

    console.print(f"[green]Deleted[/green] plans for {task_id}")
