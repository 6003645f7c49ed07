"""Flatten raw review comments into one NormalizedUnit per review thread.

The raw listing is frozen into a tuple and every later step works on indices
into it, so reply chains are walked through an adjacency map rather than by
chasing object references. The ordering rules below are what make task ids
reproducible across runs:

- threads appear in the order their first comment appears in the raw listing;
- inside a thread, siblings are ordered by (created_at, id);
- a depth-first walk from the root yields root → replies in conversation order.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from reviewtask_core.models import NormalizedUnit, ReviewComment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizePolicy:
    include_resolved: bool = False
    include_outdated: bool = True
    ignore_authors: frozenset[str] = frozenset()

    @classmethod
    def from_config(cls, config: dict) -> NormalizePolicy:
        return cls(
            include_resolved=bool(config.get("include_resolved", False)),
            include_outdated=bool(config.get("include_outdated", True)),
            ignore_authors=frozenset(a.lower() for a in config.get("ignore_authors") or []),
        )


def _sort_key(comment: ReviewComment):
    return (comment.created_at, comment.id)


def dedupe(comments: Iterable[ReviewComment]) -> tuple[ReviewComment, ...]:
    """Drop repeated comment ids, keeping the first occurrence.

    Overlapping pages can report the same comment twice.
    """
    seen: set[str] = set()
    result = []
    for comment in comments:
        if comment.id in seen:
            logger.debug("Dropping duplicate comment %s", comment.id)
            continue
        seen.add(comment.id)
        result.append(comment)
    return tuple(result)


def group_threads(snapshot: tuple[ReviewComment, ...]) -> dict[str, list[int]]:
    """Map thread id → indices into the snapshot, in first-seen thread order."""
    threads: dict[str, list[int]] = {}
    for idx, comment in enumerate(snapshot):
        threads.setdefault(comment.thread_id, []).append(idx)
    return threads


def build_unit(thread_id: str, snapshot: tuple[ReviewComment, ...], indices: list[int]) -> NormalizedUnit:
    """Reconstruct one thread's reply chain from its comment indices.

    Replies whose parent is not part of the thread (deleted upstream, or never
    returned) hang off the root. When the thread has no real root at all, the
    earliest orphan stands in as a synthetic root and the remaining orphans
    become its replies, so the thread is kept together instead of dropped.
    """
    ordered = sorted(indices, key=lambda i: _sort_key(snapshot[i]))
    by_id = {snapshot[i].id: i for i in ordered}

    children: dict[int | None, list[int]] = defaultdict(list)
    roots: list[int] = []
    orphans: list[int] = []
    for i in ordered:
        parent_id = snapshot[i].parent_id
        if parent_id is None:
            roots.append(i)
        elif parent_id in by_id and parent_id != snapshot[i].id:
            children[by_id[parent_id]].append(i)
        else:
            orphans.append(i)

    synthetic = False
    if roots:
        root = roots[0]
        # A second top-level comment in the same thread is treated like an orphan.
        top_level = roots[1:] + orphans
        anchors = [root]
    else:
        synthetic = True
        # Every comment points at another one in the thread: break the cycle at the earliest.
        candidates = orphans or ordered[:1]
        root = candidates[0]
        top_level = orphans[1:]
        anchors = list(candidates)
    children[root] = sorted(children[root] + top_level, key=lambda i: _sort_key(snapshot[i]))

    walked: list[int] = []
    visited: set[int] = set()
    stack = [root]
    while stack:
        i = stack.pop()
        if i in visited:
            continue
        visited.add(i)
        walked.append(i)
        stack.extend(reversed(children.get(i, [])))

    # Anything unreachable (a reply cycle) is appended in timestamp order.
    walked.extend(i for i in ordered if i not in visited)

    comments = [snapshot[i] for i in walked]
    if synthetic:
        logger.debug("Thread %s has no root comment; using %s as a synthetic root", thread_id, comments[0].id)
    return NormalizedUnit(
        thread_id=thread_id,
        root=comments[0],
        replies=tuple(comments[1:]),
        source_comment_ids=frozenset(c.id for c in comments),
        anchor_ids=frozenset(snapshot[i].id for i in anchors),
        synthetic_root=synthetic,
        outdated=all(c.outdated for c in comments),
    )


def normalize(comments: Iterable[ReviewComment], policy: NormalizePolicy | None = None) -> list[NormalizedUnit]:
    """Turn a raw comment listing into the ordered sequence of actionable units."""
    policy = policy or NormalizePolicy()
    snapshot = dedupe(c for c in comments if c.author.lower() not in policy.ignore_authors)

    units: list[NormalizedUnit] = []
    for thread_id, indices in group_threads(snapshot).items():
        if not policy.include_resolved and any(snapshot[i].resolved for i in indices):
            logger.debug("Skipping resolved thread %s", thread_id)
            continue
        unit = build_unit(thread_id, snapshot, indices)
        if unit.outdated and not policy.include_outdated:
            logger.debug("Skipping outdated thread %s", thread_id)
            continue
        units.append(unit)
    return units
