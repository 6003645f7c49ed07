"""Domain models for the review-to-task pipeline.

ReviewComment and NormalizedUnit are immutable snapshots recomputed on every
fetch. Task and TaskSet are the durable shapes; the store layer keeps its own
record types and the CLI maps between the two, so this package has no
knowledge of how tasks are persisted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_DONE = "done"
STATUS_CANCELLED = "cancelled"

TASK_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_DONE, STATUS_CANCELLED)

# Reconciliation never changes the status of a task in one of these states.
TERMINAL_STATUSES = frozenset({STATUS_DONE, STATUS_CANCELLED})

PRIORITIES = ("critical", "high", "medium", "low")

_SLUG_RE = re.compile(r"^([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)$")


@dataclass(frozen=True)
class PullRequestRef:
    owner: str
    repo: str
    number: int

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.repo}"

    def __str__(self) -> str:
        return f"{self.slug}#{self.number}"

    @classmethod
    def from_slug(cls, slug: str, number: int) -> PullRequestRef:
        """Build a ref from an ``owner/name`` string. Raises ValueError on malformed input."""
        owner, repo = parse_slug(slug)
        return cls(owner=owner, repo=repo, number=number)


def parse_slug(slug: str) -> tuple[str, str]:
    match = _SLUG_RE.match(slug.strip())
    if not match:
        raise ValueError(f"Invalid repository {slug!r}. Expected owner/name.")
    return match.group(1), match.group(2)


@dataclass(frozen=True)
class ReviewComment:
    """One reviewer comment as reported by GitHub. Read-only."""

    id: str
    author: str
    body: str
    thread_id: str
    created_at: datetime
    path: str | None = None
    line: int | None = None
    parent_id: str | None = None
    resolved: bool = False
    outdated: bool = False
    url: str = ""
    review_id: str | None = None


@dataclass(frozen=True)
class ReviewMeta:
    """Review-level metadata: who reviewed and with what verdict."""

    id: str
    reviewer: str
    state: str  # "APPROVED" | "CHANGES_REQUESTED" | "COMMENTED" | "DISMISSED" | "PENDING"
    body: str = ""
    submitted_at: datetime | None = None


@dataclass(frozen=True)
class ReviewSnapshot:
    """Everything one fetch learned about a PR, fully joined before it is returned."""

    pr: PullRequestRef
    title: str
    head_branch: str
    reviews: tuple[ReviewMeta, ...] = ()
    comments: tuple[ReviewComment, ...] = ()


@dataclass(frozen=True)
class NormalizedUnit:
    """A review thread flattened into a single actionable point.

    ``source_comment_ids`` references every comment in the thread (lookup
    only). ``anchor_ids`` are the comments that carry the point itself: the
    thread root, or the top-level orphans when the root was deleted. Task
    identity derives from the anchors so that later replies do not re-key the
    task.
    """

    thread_id: str
    root: ReviewComment
    replies: tuple[ReviewComment, ...]
    source_comment_ids: frozenset[str]
    anchor_ids: frozenset[str]
    synthetic_root: bool = False
    outdated: bool = False

    @property
    def body(self) -> str:
        return self.root.body

    @property
    def author(self) -> str:
        return self.root.author

    @property
    def path(self) -> str | None:
        return self.root.path

    @property
    def line(self) -> int | None:
        return self.root.line

    @property
    def comments(self) -> tuple[ReviewComment, ...]:
        return (self.root, *self.replies)


@dataclass
class Task:
    id: str
    pr: PullRequestRef
    source_comment_ids: tuple[str, ...]
    description: str
    item_index: int = 0
    status: str = STATUS_PENDING
    priority: str = "medium"
    path: str | None = None
    line: int | None = None
    author: str = ""
    created_at: str = ""  # ISO-8601 UTC timestamp
    updated_at: str = ""  # ISO-8601 UTC timestamp
    user_notes: str = ""
    # Digest of the item text; empty for a unit kept whole.
    item_key: str = ""
    item_text: str = ""
    # Which classifier split which thread content into this task.
    split_key: str = ""


@dataclass
class TaskSet:
    """All tasks tracked for one PR, in display order, unique by id."""

    pr: PullRequestRef
    tasks: list[Task] = field(default_factory=list)
    id_scheme: int = 1
    fetched_at: str = ""

    def get(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def counts(self) -> dict[str, int]:
        result = {status: 0 for status in TASK_STATUSES}
        for task in self.tasks:
            result[task.status] = result.get(task.status, 0) + 1
        return result


@dataclass
class ChangeSummary:
    added: int = 0
    updated: int = 0
    cancelled: int = 0
    removed: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.added or self.updated or self.cancelled or self.removed)
