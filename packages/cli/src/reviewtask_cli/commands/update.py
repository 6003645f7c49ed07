"""update command — the user's side of task state: status and notes."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

import click
from rich.console import Console

from reviewtask_cli.context import AppContext
from reviewtask_cli.mapping import record_to_task_set, task_set_to_record
from reviewtask_cli.tasks import find_task, load_task_sets
from reviewtask_core.models import TASK_STATUSES
from reviewtask_store.base import PersistenceError

console = Console()


@click.command("update")
@click.argument("task_id")
@click.argument("status", type=click.Choice(TASK_STATUSES), required=False)
@click.option("--note", default=None, help="Replace the task's notes. Notes survive every later fetch.")
@click.option("--repo", default=None, help="Only look for the task in this repository (owner/name).")
@click.pass_obj
def update_cmd(app: AppContext, task_id: str, status: str | None, note: str | None, repo: str | None):
    """Set the STATUS of TASK_ID (a full id or unique prefix) and/or its notes.

    \b
    Examples:
      reviewtask update t1-3f9a in_progress
      reviewtask update t1-3f9a done --note "fixed in 4b1c2e"
    """
    if status is None and note is None:
        raise click.UsageError("Nothing to update. Give a STATUS, --note, or both.")

    store = app.store
    task_set, task = find_task(load_task_sets(store, repo), task_id)
    pr = task_set.pr

    try:
        with store.lock(pr.owner, pr.repo, pr.number):
            # Re-read under the lock: a concurrent fetch may have rewritten the set.
            current = record_to_task_set(store.load(pr.owner, pr.repo, pr.number))
            target = current.get(task.id) if current else None
            if target is None:
                raise click.ClickException(f"Task {task.id} disappeared from {pr} while updating.")

            changes: dict = {"updated_at": datetime.now(timezone.utc).isoformat()}
            if status is not None:
                changes["status"] = status
            if note is not None:
                changes["user_notes"] = note
            current.tasks = [replace(t, **changes) if t.id == target.id else t for t in current.tasks]
            store.save(task_set_to_record(current))
    except PersistenceError as e:
        raise click.ClickException(str(e))

    if status is not None and status != target.status:
        console.print(f"[green]Updated {task.id}[/green]: {target.status} → {status}")
    else:
        console.print(f"[green]Updated {task.id}[/green]")
