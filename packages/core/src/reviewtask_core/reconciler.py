"""Three-way merge of freshly synthesized tasks into the persisted task set.

Upstream owns what a task says (description, priority, location); the user
owns what happens to it (status, notes). A fetch may rewrite the former but
never the latter, with one exception: when a task's review comments disappear
upstream the retention policy either cancels it or removes it.

``done`` and ``cancelled`` are terminal for reconciliation. A cancelled task
whose comments come back stays cancelled, and a finished task whose comments
vanish stays finished.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from reviewtask_core.ids import ID_SCHEME, migrate_task_ids
from reviewtask_core.models import (
    STATUS_CANCELLED,
    STATUS_PENDING,
    TERMINAL_STATUSES,
    ChangeSummary,
    PullRequestRef,
    Task,
    TaskSet,
)

RETAIN_AS_CANCELLED = "cancel"
DELETE_VANISHED = "delete"

# Fields refreshed from upstream on every fetch.
_UPSTREAM_FIELDS = (
    "description",
    "priority",
    "path",
    "line",
    "author",
    "item_index",
    "item_text",
    "split_key",
)


@dataclass
class ReconcileResult:
    task_set: TaskSet
    summary: ChangeSummary = field(default_factory=ChangeSummary)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _refresh(existing: Task, candidate: Task, now: str) -> tuple[Task, bool]:
    changes = {
        name: getattr(candidate, name)
        for name in _UPSTREAM_FIELDS
        if getattr(existing, name) != getattr(candidate, name)
    }
    if not changes:
        return existing, False
    return replace(existing, **changes, updated_at=now), True


def reconcile(
    candidates: list[Task],
    previous: TaskSet | None,
    pr: PullRequestRef,
    retention: str = RETAIN_AS_CANCELLED,
    now: str | None = None,
) -> ReconcileResult:
    """Merge candidates into previous and report what changed.

    Neither argument is mutated. Task order is the previous order, followed
    by new tasks in candidate order.
    """
    if retention not in (RETAIN_AS_CANCELLED, DELETE_VANISHED):
        raise ValueError(f"Unknown retention policy: {retention!r}")
    now = now or _now()
    summary = ChangeSummary()
    previous = migrate_task_ids(previous) if previous is not None else TaskSet(pr=pr, id_scheme=ID_SCHEME)

    by_id = {task.id: task for task in candidates}
    merged: list[Task] = []
    kept_ids: set[str] = set()

    for existing in previous.tasks:
        if existing.id in kept_ids:
            continue  # a corrupted store may repeat ids; the first one wins
        candidate = by_id.get(existing.id)
        if candidate is not None:
            task, changed = _refresh(existing, candidate, now)
            if changed:
                summary.updated += 1
            merged.append(task)
            kept_ids.add(task.id)
            continue

        if retention == DELETE_VANISHED:
            summary.removed += 1
            continue
        if existing.status in TERMINAL_STATUSES:
            merged.append(existing)
        else:
            merged.append(replace(existing, status=STATUS_CANCELLED, updated_at=now))
            summary.cancelled += 1
        kept_ids.add(existing.id)

    for candidate in candidates:
        if candidate.id in kept_ids:
            continue
        merged.append(replace(candidate, status=STATUS_PENDING, created_at=now, updated_at=now, user_notes=""))
        kept_ids.add(candidate.id)
        summary.added += 1

    task_set = TaskSet(
        pr=pr,
        tasks=merged,
        id_scheme=ID_SCHEME,
        fetched_at=now,
    )
    return ReconcileResult(task_set=task_set, summary=summary)
