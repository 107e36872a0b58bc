"""Main CLI entry point for agentloop."""

import sys
from pathlib import Path
from typing import Optional

import click

from agentloop import __version__
from agentloop.cli.commands.common import console
from agentloop.cli.commands.config import config_group
from agentloop.cli.commands.logs import logs_command
from agentloop.cli.commands.plan import plan_command
from agentloop.cli.commands.plans import plans_group
from agentloop.cli.commands.run import run_command
from agentloop.core.exceptions import AgentLoopError


@click.group()
@click.version_option(__version__, prog_name="agentloop")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: Optional[Path]) -> None:
    """agentloop: plan, execute and evaluate natural-language requests.

    \b
    Examples:
        agentloop run "Summarise sales.csv by region" -i sales.csv
        agentloop plan "Build a word-frequency chart from book.txt"
        agentloop config show
        agentloop config validate .agentloop/config.yaml
        agentloop plans list
        agentloop logs --task task-1a2b3c4d
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config

    if verbose:
        console.print("[dim]agentloop starting with verbose output enabled[/dim]")


cli.add_command(run_command, name="run")
cli.add_command(plan_command, name="plan")
cli.add_command(config_group, name="config")
cli.add_command(plans_group, name="plans")
cli.add_command(logs_command, name="logs")


def main() -> None:
    """Main entry point for the CLI."""
    try:
        # Without standalone mode, ctx.exit() codes come back as the return value
        exit_code = cli(standalone_mode=False)
        if isinstance(exit_code, int) and exit_code != 0:
            sys.exit(exit_code)
    except click.exceptions.Exit as e:
        sys.exit(e.exit_code)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)
    except AgentLoopError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/red] {e}")
        if "--verbose" in sys.argv or "-v" in sys.argv:
            console.print_exception()
        sys.exit(1)


if __name__ == "__main__":
    main()
