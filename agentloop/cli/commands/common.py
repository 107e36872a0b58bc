"""Helpers shared by CLI commands."""

import logging
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from agentloop.config.loader import load_config
from agentloop.config.models import AgentLoopConfig
from agentloop.core.plan import ExecutionPlan

console = Console()


def get_config(ctx: click.Context) -> AgentLoopConfig:
    """Load configuration, honouring the global ``--config`` option."""
    obj = ctx.find_root().obj or {}
    config_path: Optional[Path] = obj.get("config")
    return load_config(config_path=config_path)


def setup_logging(config: AgentLoopConfig, verbose: bool = False) -> None:
    """Route library logging through rich at the configured level."""
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def render_plan_table(plan: ExecutionPlan) -> Table:
    """Build a table showing the steps of a plan."""
    table = Table(title=f"Plan v{plan.version}: {plan.summary}")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Description")
    table.add_column("Expected output", style="dim")
    table.add_column("Depends on", justify="right")

    for step in plan.steps:
        table.add_row(
            str(step.order),
            step.step_type.value,
            step.description,
            step.expected_output,
            ", ".join(str(d) for d in step.dependencies) or "-",
        )

    table.caption = f"Complexity: {plan.complexity}/10"
    return table
