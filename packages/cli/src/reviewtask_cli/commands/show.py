"""show command — list stored tasks or print one task in detail."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from reviewtask_cli.context import AppContext
from reviewtask_cli.tasks import find_task, load_task_sets
from reviewtask_core.models import TERMINAL_STATUSES, Task, TaskSet

console = Console()

_STATUS_STYLE = {"pending": "yellow", "in_progress": "cyan", "done": "green", "cancelled": "dim"}


def _print_detail(task_set: TaskSet, task: Task) -> None:
    style = _STATUS_STYLE.get(task.status, "white")
    console.print(f"[bold]{task.id}[/bold]  [{style}]{task.status}[/{style}]  ({task.priority})")
    console.print(f"  PR:        {task_set.pr}")
    if task.path:
        location = f"{task.path}:{task.line}" if task.line else task.path
        console.print(f"  Location:  {escape(location)}")
    console.print(f"  Reviewer:  {escape(task.author)}")
    console.print(f"  Comments:  {', '.join(task.source_comment_ids)}")
    console.print(f"  Created:   {task.created_at[:19].replace('T', ' ')}")
    console.print(f"  Updated:   {task.updated_at[:19].replace('T', ' ')}")
    console.print(f"\n  {escape(task.description)}")
    if task.user_notes:
        console.print(f"\n  [bold]Notes:[/bold] {escape(task.user_notes)}")


@click.command("show")
@click.argument("task_id", required=False)
@click.option("--repo", default=None, help="Only tasks of this repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Only tasks of this PR number.")
@click.option("--all", "show_all", is_flag=True, help="Include done and cancelled tasks.")
@click.pass_obj
def show_cmd(app: AppContext, task_id: str | None, repo: str | None, pr_number: int | None, show_all: bool):
    """List tasks, or show TASK_ID (a full id or unique prefix) in detail."""
    task_sets = load_task_sets(app.store, repo, pr_number)

    if task_id:
        task_set, task = find_task(task_sets, task_id)
        _print_detail(task_set, task)
        return

    rows = [(ts, t) for ts in task_sets for t in ts.tasks if show_all or t.status not in TERMINAL_STATUSES]
    if not rows:
        console.print("[yellow]No open tasks.[/yellow]" if not show_all else "[yellow]No tasks found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold", no_wrap=True)
    table.add_column("PR", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Priority")
    table.add_column("Description")
    for ts, t in rows:
        style = _STATUS_STYLE.get(t.status, "white")
        table.add_row(
            t.id,
            f"#{ts.pr.number}",
            f"[{style}]{t.status}[/{style}]",
            t.priority,
            escape(t.description),
        )
    console.print(table)
