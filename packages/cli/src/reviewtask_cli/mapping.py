"""TaskSet ⇄ TaskSetRecord mapping.

The CLI owns this mapping; reviewtask_core has no store knowledge and
reviewtask_store has no core knowledge. The CLI bridges the two.
"""

from __future__ import annotations

from reviewtask_core.models import PullRequestRef, Task, TaskSet
from reviewtask_store.models import TaskRecord, TaskSetRecord


def task_set_to_record(task_set: TaskSet) -> TaskSetRecord:
    pr = task_set.pr
    return TaskSetRecord(
        owner=pr.owner,
        repo=pr.repo,
        pr_number=pr.number,
        id_scheme=task_set.id_scheme,
        fetched_at=task_set.fetched_at,
        tasks=[
            TaskRecord(
                id=t.id,
                source_comment_ids=list(t.source_comment_ids),
                item_index=t.item_index,
                description=t.description,
                status=t.status,
                priority=t.priority,
                path=t.path,
                line=t.line,
                author=t.author,
                created_at=t.created_at,
                updated_at=t.updated_at,
                user_notes=t.user_notes,
                item_key=t.item_key,
                item_text=t.item_text,
                split_key=t.split_key,
            )
            for t in task_set.tasks
        ],
    )


def record_to_task_set(record: TaskSetRecord | None) -> TaskSet | None:
    if record is None:
        return None
    pr = PullRequestRef(owner=record.owner, repo=record.repo, number=record.pr_number)
    return TaskSet(
        pr=pr,
        id_scheme=record.id_scheme,
        fetched_at=record.fetched_at,
        tasks=[
            Task(
                id=r.id,
                pr=pr,
                source_comment_ids=tuple(sorted(r.source_comment_ids)),
                item_index=r.item_index,
                description=r.description,
                status=r.status,
                priority=r.priority,
                path=r.path,
                line=r.line,
                author=r.author,
                created_at=r.created_at,
                updated_at=r.updated_at,
                user_notes=r.user_notes,
                item_key=r.item_key,
                item_text=r.item_text,
                split_key=r.split_key,
            )
            for r in record.tasks
        ],
    )
