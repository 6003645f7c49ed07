"""Pipeline entry points used by the ``fetch`` command.

PR identifier → ReviewSource → ReviewSnapshot → normalize → synthesize →
candidate tasks. Reconciling candidates with the stored set is left to the
caller, which has to hold the store lock around load → reconcile → save.
"""

from __future__ import annotations

import logging

from reviewtask_core.classify import Classifier, get_classifier
from reviewtask_core.errors import NotFound
from reviewtask_core.models import PullRequestRef, ReviewSnapshot, Task, TaskSet, parse_slug
from reviewtask_core.normalizer import NormalizePolicy, normalize
from reviewtask_core.source import ReviewSource
from reviewtask_core.synthesizer import synthesize
from reviewtask_core.utils.git import current_branch

logger = logging.getLogger(__name__)


def resolve_ref(source: ReviewSource, repo: str, pr_number: int | None, branch: str | None = None) -> PullRequestRef:
    """Resolve the PR to fetch: an explicit number, else the PR for the current branch."""
    owner, name = parse_slug(repo)
    if pr_number is not None:
        return PullRequestRef(owner=owner, repo=name, number=pr_number)

    branch = branch or current_branch()
    if not branch:
        raise NotFound("Could not determine the current git branch. Pass a PR number explicitly.")
    logger.debug("Looking up the open PR for branch %s", branch)
    return source.resolve_branch(owner, name, branch)


def build_candidates(
    snapshot: ReviewSnapshot,
    config: dict,
    classifier: Classifier | None = None,
    previous: TaskSet | None = None,
) -> list[Task]:
    """Normalize and synthesize the snapshot's comments into candidate tasks.

    previous is the stored task set, if any; splits recorded there are reused
    for unchanged threads.
    """
    units = normalize(snapshot.comments, NormalizePolicy.from_config(config))
    logger.debug("%d comment(s) normalized into %d unit(s)", len(snapshot.comments), len(units))
    return synthesize(
        units,
        snapshot.pr,
        classifier or get_classifier(config),
        max_description_chars=int(config.get("max_description_chars", 120)),
        previous=previous,
    )
