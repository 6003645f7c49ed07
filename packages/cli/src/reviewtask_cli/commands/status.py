"""status command — task counts per fetched pull request."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from reviewtask_cli.context import AppContext
from reviewtask_cli.tasks import load_task_sets

console = Console()


@click.command("status")
@click.option("--repo", default=None, help="Only show PRs of this repository (owner/name).")
@click.option("--pr", "pr_number", type=int, default=None, help="Only show this PR number.")
@click.pass_obj
def status_cmd(app: AppContext, repo: str | None, pr_number: int | None):
    """Show how many tasks are pending, in progress, done and cancelled per PR.

    Reads only the local task store; run `reviewtask fetch` to refresh it.
    """
    task_sets = load_task_sets(app.store, repo, pr_number)
    if not task_sets:
        console.print("[yellow]No tasks found. Run `reviewtask fetch` first.[/yellow]")
        return

    table = Table(title="Review Tasks", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", no_wrap=True)
    table.add_column("Pending", justify="right")
    table.add_column("In progress", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("Cancelled", justify="right")
    table.add_column("Fetched")

    totals = {"pending": 0, "in_progress": 0, "done": 0, "cancelled": 0}
    for ts in task_sets:
        counts = ts.counts()
        for status in totals:
            totals[status] += counts.get(status, 0)
        table.add_row(
            f"{ts.pr.slug}#{ts.pr.number}",
            f"[yellow]{counts['pending']}[/yellow]",
            f"[cyan]{counts['in_progress']}[/cyan]",
            f"[green]{counts['done']}[/green]",
            f"[dim]{counts['cancelled']}[/dim]",
            ts.fetched_at[:16].replace("T", " "),
        )

    console.print(table)
    remaining = totals["pending"] + totals["in_progress"]
    console.print(f"{remaining} open task(s) across {len(task_sets)} PR(s).")
