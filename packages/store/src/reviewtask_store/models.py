"""Persisted task data models.

Decoupled from reviewtask_core so the store layer can be used independently
and reviewtask_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TaskRecord:
    """A single task as written to disk."""

    id: str
    source_comment_ids: list[str]
    description: str
    status: str  # "pending" | "in_progress" | "done" | "cancelled"
    item_index: int = 0
    priority: str = "medium"
    path: str | None = None
    line: int | None = None
    author: str = ""
    created_at: str = ""  # ISO-8601 UTC timestamp
    updated_at: str = ""  # ISO-8601 UTC timestamp
    user_notes: str = ""
    item_key: str = ""
    item_text: str = ""
    split_key: str = ""


@dataclass
class TaskSetRecord:
    """Every task tracked for one pull request, keyed by (owner, repo, pr_number).

    Created by the CLI layer from a reconciled TaskSet; the CLI maps
    TaskSet ⇄ TaskSetRecord on both sides of every store call.
    """

    owner: str
    repo: str
    pr_number: int
    id_scheme: int = 0  # 0 = written before task id schemes were versioned
    fetched_at: str = ""
    tasks: list[TaskRecord] = field(default_factory=list)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"
