"""agentloop config commands."""

from pathlib import Path

import click
import yaml

from agentloop.config.loader import get_config_paths, validate_config_file

from .common import console, get_config


@click.group()
def config_group() -> None:
    """Inspect and validate configuration."""
    pass


@config_group.command("show")
@click.pass_context
def show_command(ctx: click.Context) -> None:
    """Print the effective configuration as YAML."""
    config = get_config(ctx)

    for name, path in get_config_paths().items():
        found = path is not None and path.exists()
        console.print(f"[dim]{name}: {path or '-'}{'' if found else ' (not found)'}[/dim]")

    console.print(
        yaml.dump(config.model_dump(mode="json"), default_flow_style=False, sort_keys=False),
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


@config_group.command("validate")
@click.argument("path", type=click.Path(path_type=Path))
@click.pass_context
def validate_command(ctx: click.Context, path: Path) -> None:
    """Validate the configuration file at PATH."""
    result = validate_config_file(path)

    if result["valid"]:
        console.print(f"[green]OK[/green] {path}")
        return

    console.print(f"[red]Invalid configuration:[/red] {path}")
    for error in result["errors"]:
        console.print(f"  - {error}", markup=False)
    ctx.exit(1)
