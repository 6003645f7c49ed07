"""fetch command — pull review threads from GitHub and reconcile them into local tasks."""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from reviewtask_cli import context
from reviewtask_cli.mapping import record_to_task_set, task_set_to_record
from reviewtask_core.classify import get_classifier
from reviewtask_core.errors import ReviewTaskError
from reviewtask_core.fetcher import build_candidates, resolve_ref
from reviewtask_core.models import ChangeSummary, TaskSet
from reviewtask_core.reconciler import reconcile
from reviewtask_store.base import PersistenceError

console = Console()

_PRIORITY_STYLE = {"critical": "red", "high": "yellow", "medium": "white", "low": "dim"}


def _print_summary(task_set: TaskSet, summary: ChangeSummary) -> None:
    if not summary.changed:
        console.print(f"[green]No changes.[/green] {len(task_set.tasks)} task(s) tracked for PR #{task_set.pr.number}.")
        return

    parts = [f"{summary.added} added", f"{summary.updated} updated", f"{summary.cancelled} cancelled"]
    if summary.removed:
        parts.append(f"{summary.removed} removed")
    console.print(f"[bold]Tasks for PR #{task_set.pr.number}:[/bold] " + ", ".join(parts))

    open_tasks = [t for t in task_set.tasks if t.status in ("pending", "in_progress")]
    if not open_tasks:
        return
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold", no_wrap=True)
    table.add_column("Priority", width=9)
    table.add_column("Location", max_width=30)
    table.add_column("Description")
    for t in open_tasks:
        style = _PRIORITY_STYLE.get(t.priority, "white")
        location = f"{t.path}:{t.line}" if t.path and t.line else (t.path or "")
        table.add_row(t.id, f"[{style}]{t.priority}[/{style}]", escape(location), escape(t.description))
    console.print(table)


@click.command("fetch", short_help="Fetch GitHub Pull Request reviews and generate tasks")
@click.argument("pr_number", type=int, required=False, metavar="[PR_NUMBER]")
@click.option("--repo", default=None, help="GitHub repository (owner/name). Defaults to config, then the git remote.")
@click.option(
    "--include-resolved",
    is_flag=True,
    help="Also turn resolved review threads into tasks.",
)
@click.pass_obj
def fetch_cmd(app: context.AppContext, pr_number: int | None, repo: str | None, include_resolved: bool):
    """Fetch GitHub Pull Request reviews, save them locally, and generate tasks.

    Without PR_NUMBER the open pull request for the current git branch is
    used. Running fetch again refreshes task descriptions from the latest
    review comments while keeping the status and notes you set; tasks whose
    comments were deleted or resolved are cancelled (or removed, with
    `retention: delete`).

    \b
    Required environment variables:
      GITHUB_TOKEN         GitHub personal access token (or use gh CLI)
      ANTHROPIC_API_KEY    Required with `classifier: anthropic`
      OPENAI_API_KEY       Required with `classifier: openai`
    """
    config = dict(app.config)
    if include_resolved:
        config["include_resolved"] = True

    token = app.require_token()
    repo_slug = app.resolve_repo(repo)

    try:
        classifier = get_classifier(config)
        source = context.build_source(config, token)
        ref = resolve_ref(source, repo_slug, pr_number)

        console.print(f"Fetching reviews for PR #{ref.number} in {ref.slug}...")
        snapshot = source.fetch(ref)
        console.print(f"Processing comments ({len(snapshot.comments)} found)...")
        store = app.store
        # Unlocked read: only consulted for stored splits, never written back.
        stored = record_to_task_set(store.load(ref.owner, ref.repo, ref.number))
        candidates = build_candidates(snapshot, config, classifier, previous=stored)

        with store.lock(ref.owner, ref.repo, ref.number):
            previous = record_to_task_set(store.load(ref.owner, ref.repo, ref.number))
            result = reconcile(candidates, previous, ref, retention=config["retention"])
            store.save(task_set_to_record(result.task_set))
    except (ReviewTaskError, PersistenceError, ValueError, ImportError) as e:
        raise click.ClickException(str(e))

    _print_summary(result.task_set, result.summary)
