"""Helpers shared by the commands that read stored tasks (status, show, update)."""

from __future__ import annotations

import click

from reviewtask_cli.mapping import record_to_task_set
from reviewtask_core.models import Task, TaskSet
from reviewtask_store.base import BaseStore, PersistenceError


def load_task_sets(store: BaseStore, repo: str | None = None, pr_number: int | None = None) -> list[TaskSet]:
    try:
        records = store.list_task_sets(repo)
    except PersistenceError as e:
        raise click.ClickException(str(e))
    task_sets = [record_to_task_set(r) for r in records]
    if pr_number is not None:
        task_sets = [ts for ts in task_sets if ts.pr.number == pr_number]
    return task_sets


def find_task(task_sets: list[TaskSet], task_id: str) -> tuple[TaskSet, Task]:
    """Locate a task by full id or unique prefix across the given task sets."""
    exact = [(ts, t) for ts in task_sets for t in ts.tasks if t.id == task_id]
    if exact:
        return exact[0]
    matches = [(ts, t) for ts in task_sets for t in ts.tasks if t.id.startswith(task_id)]
    if not matches:
        raise click.ClickException(f"No task matches '{task_id}'.")
    if len(matches) > 1:
        listed = ", ".join(f"{t.id} ({ts.pr})" for ts, t in matches[:5])
        raise click.ClickException(f"'{task_id}' matches several tasks: {listed}. Use a longer prefix.")
    return matches[0]
