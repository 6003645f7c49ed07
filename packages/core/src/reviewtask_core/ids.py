"""Deterministic, versioned task identifiers.

A task id is a pure function of the id scheme, the canonically sorted anchor
comment ids and, for a unit split into several items, a digest of the item's
own text. A unit kept whole hashes as item ``#0``. Keying split items by
content rather than position means that removing or reordering items in a
review comment never moves one item's status onto another.

Every persisted TaskSet records the scheme it was written with; when the
scheme changes, migrate_task_ids re-keys the stored tasks so that the next
fetch matches them instead of treating every task as new.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import replace
from typing import Callable, Iterable

from reviewtask_core.models import TaskSet
from reviewtask_core.utils.text import strip_markup

logger = logging.getLogger(__name__)

ID_SCHEME = 1

_EMPHASIS_RE = re.compile(r"\*\*|__|~~|`")


def item_digest(text: str) -> str:
    """Digest of an action item, insensitive to case, markup and whitespace."""
    normalized = " ".join(_EMPHASIS_RE.sub("", strip_markup(text)).lower().split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16]


def split_key(classifier_name: str, bodies: Iterable[str]) -> str:
    """Digest of everything a classifier was shown when it split one unit."""
    h = hashlib.sha256(f"reviewtask/split\n{classifier_name}".encode("utf-8"))
    for body in bodies:
        h.update(b"\0" + body.encode("utf-8"))
    return h.hexdigest()[:16]


def _scheme_v1(source_comment_ids: Iterable[str], item_index: int, item_key: str) -> str:
    canonical = "\n".join(sorted(set(source_comment_ids)))
    item = f"@{item_key}" if item_key else f"#{item_index}"
    digest = hashlib.sha256(f"reviewtask/v1\n{canonical}\n{item}".encode("utf-8")).hexdigest()
    return f"t1-{digest[:16]}"


_SCHEMES: dict[int, Callable[[Iterable[str], int, str], str]] = {1: _scheme_v1}


def task_id(
    source_comment_ids: Iterable[str],
    item_index: int = 0,
    item_key: str = "",
    scheme: int = ID_SCHEME,
) -> str:
    try:
        fn = _SCHEMES[scheme]
    except KeyError:
        raise ValueError(f"Unknown task id scheme: {scheme}")
    return fn(source_comment_ids, item_index, item_key)


def migrate_task_ids(task_set: TaskSet) -> TaskSet:
    """Return task_set re-keyed under the current scheme.

    Sets written before the scheme was recorded load with ``id_scheme=0``.
    A set from a newer scheme than this release knows is refused rather than
    silently re-keyed.
    """
    if task_set.id_scheme == ID_SCHEME:
        return task_set
    if task_set.id_scheme > ID_SCHEME:
        raise ValueError(
            f"Task set for {task_set.pr} uses id scheme {task_set.id_scheme}; "
            f"this version understands up to {ID_SCHEME}. Upgrade reviewtask."
        )

    logger.info("Migrating %s task ids from scheme %d to %d", task_set.pr, task_set.id_scheme, ID_SCHEME)
    tasks = []
    seen: set[str] = set()
    for task in task_set.tasks:
        new_id = task_id(task.source_comment_ids, task.item_index, task.item_key)
        if new_id in seen:
            logger.warning("Dropping task %s: collides with an earlier task after migration", task.id)
            continue
        seen.add(new_id)
        tasks.append(replace(task, id=new_id))
    return replace(task_set, tasks=tasks, id_scheme=ID_SCHEME)
