"""Map normalized review units to candidate tasks.

Deterministic: the same units and classifier always produce the same tasks,
in the same order, with the same ids. Candidates carry no timestamps; the
reconciler stamps them when they are first persisted.

A classifier that is not deterministic on its own (an AI provider) is made so
by passing the previously stored task set: a thread whose content and
classifier are unchanged gets the split recorded last time instead of a fresh
answer.
"""

from __future__ import annotations

import logging
from typing import Iterable

from reviewtask_core.classify import Classifier, ConservativeClassifier
from reviewtask_core.errors import ClassificationAmbiguous
from reviewtask_core.ids import item_digest, split_key, task_id
from reviewtask_core.models import NormalizedUnit, PullRequestRef, Task, TaskSet
from reviewtask_core.utils.text import classify_priority, clean_description, has_suggestion

logger = logging.getLogger(__name__)

# (item text, item key); an empty key marks the unit kept whole.
Item = tuple[str, str]


def _fallback_description(unit: NormalizedUnit) -> str:
    if has_suggestion(unit.body):
        return f"Apply suggested change in {unit.path}" if unit.path else "Apply suggested change"
    return f"Address review comment from {unit.author}"


def items_for(unit: NormalizedUnit, classifier: Classifier) -> list[Item]:
    try:
        texts = classifier.classify(unit)
    except ClassificationAmbiguous as e:
        logger.debug("Thread %s: %s; keeping it as one task", unit.thread_id, e)
        return [(unit.body, "")]
    if texts == [unit.body]:
        return [(unit.body, "")]
    return [(text, item_digest(text)) for text in texts]


def stored_splits(previous: TaskSet | None) -> dict[tuple[tuple[str, ...], str], list[Item]]:
    """Items of every stored task, grouped by anchors and split key, in item order."""
    splits: dict[tuple[tuple[str, ...], str], list[Item]] = {}
    if previous is None:
        return splits
    for task in sorted(previous.tasks, key=lambda t: t.item_index):
        if not task.split_key:
            continue
        key = (tuple(sorted(task.source_comment_ids)), task.split_key)
        splits.setdefault(key, []).append((task.item_text, task.item_key))
    return splits


def synthesize(
    units: Iterable[NormalizedUnit],
    pr: PullRequestRef,
    classifier: Classifier | None = None,
    max_description_chars: int = 120,
    previous: TaskSet | None = None,
) -> list[Task]:
    classifier = classifier or ConservativeClassifier()
    reuse = {} if classifier.deterministic else stored_splits(previous)
    tasks: list[Task] = []
    seen: set[str] = set()

    for unit in units:
        source_ids = tuple(sorted(unit.anchor_ids))
        unit_split = split_key(classifier.name, (c.body for c in unit.comments))
        items = reuse.get((source_ids, unit_split))
        if items is not None:
            logger.debug("Thread %s unchanged; reusing its stored split", unit.thread_id)
            items = [(text if key else unit.body, key) for text, key in items]
        else:
            items = items_for(unit, classifier)

        for index, (item, key) in enumerate(items):
            tid = task_id(source_ids, index, key)
            if tid in seen:
                continue
            seen.add(tid)
            tasks.append(
                Task(
                    id=tid,
                    pr=pr,
                    source_comment_ids=source_ids,
                    item_index=index,
                    description=clean_description(item, max_description_chars) or _fallback_description(unit),
                    priority=classify_priority(item),
                    path=unit.path,
                    line=unit.line,
                    author=unit.author,
                    item_key=key,
                    item_text=item if key else "",
                    split_key=unit_split,
                )
            )
    return tasks
