"""agentloop logs command."""

from pathlib import Path
from typing import List, Optional

import click

from agentloop.tracking.activity_logger import ActivityEvent, ActivityLogger, EventType

from .common import console, get_config

_EVENT_STYLES = {
    EventType.TASK_COMPLETE: "green",
    EventType.TASK_FAIL: "red",
    EventType.TASK_IMPOSSIBLE: "red",
    EventType.TASK_CANCELLED: "yellow",
    EventType.STEP_RETRY: "yellow",
    EventType.ERROR: "bold red",
    EventType.STATE_TRANSITION: "dim",
}


@click.command()
@click.argument("session_id", required=False)
@click.option("--task", "-t", "task_id", help="Only show events for this task")
@click.option(
    "--lines", "-n", type=int, default=50, help="Number of events to show (default: 50)"
)
@click.pass_context
def logs_command(
    ctx: click.Context, session_id: Optional[str], task_id: Optional[str], lines: int
) -> None:
    """View the activity log of a session.

    Shows the latest session when SESSION_ID is omitted.

    \b
    Examples:
        agentloop logs                         # Recent events of the latest session
        agentloop logs 20260101-120000-ab12cd  # A specific session
        agentloop logs --task task-1a2b3c4d    # Every event of one task
    """
    logs_dir = get_config(ctx).get_log_dir()
    sessions_dir = logs_dir / "sessions"

    if session_id is None:
        session_id = _latest_session(sessions_dir)
        if session_id is None:
            console.print(f"[yellow]No activity logs found in {logs_dir}[/yellow]")
            return
    elif not (sessions_dir / session_id).is_dir():
        console.print(f"[red]No activity log for session '{session_id}'[/red]")
        ctx.exit(1)

    activity = ActivityLogger(session_id, logs_dir)
    if task_id:
        events = activity.get_task_events(task_id)[-lines:]
    else:
        events = activity.get_recent_events(lines)

    console.print(f"[bold]Session {session_id}[/bold]\n")
    _display_events(events)


def _latest_session(sessions_dir: Path) -> Optional[str]:
    """Name of the newest session (session ids sort by start time)."""
    if not sessions_dir.is_dir():
        return None
    names = sorted(path.name for path in sessions_dir.iterdir() if path.is_dir())
    return names[-1] if names else None


def _display_events(events: List[ActivityEvent]) -> None:
    if not events:
        console.print("[yellow]No log entries to display[/yellow]")
        return

    for event in events:
        time_part = event.timestamp.strftime("%H:%M:%S")
        style = _EVENT_STYLES.get(event.event_type, "blue")
        task = f" [cyan]{event.task_id}[/cyan]" if event.task_id else ""
        console.print(
            f"[dim]{time_part}[/dim] [{style}]{event.event_type.value}[/{style}]{task} ",
            end="",
        )
        console.print(event.message, markup=False, highlight=False)
