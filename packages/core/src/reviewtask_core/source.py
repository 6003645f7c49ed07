"""Review Source Adapter: read-only access to a PR's review data.

The adapter hands downstream either a complete ReviewSnapshot or an error,
never a partial listing. Comment pages are fetched concurrently and joined
before anything is returned; a page that keeps failing aborts the whole fetch.

Transient failures (HTTP 5xx and 429, dropped connections, timeouts) are
retried with exponential backoff up to ``max_retries`` attempts. Everything
else is reported immediately:

  401 / 403 / exhausted retries  →  SourceUnavailable
  404 on the repo or PR          →  NotFound
  several open PRs for a branch  →  AmbiguousBranch
"""

from __future__ import annotations

import logging
import math
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

import requests
from github import BadCredentialsException, GithubException, UnknownObjectException

from reviewtask_core.errors import AmbiguousBranch, NotFound, SourceUnavailable
from reviewtask_core.gh.pull_request import (
    DEFAULT_PER_PAGE,
    comment_from_github,
    get_client,
    get_open_pulls_for_branch,
    get_pull,
    get_repo,
    get_review_threads_page,
    get_reviews,
    review_body_comment,
    review_from_github,
    thread_index,
)
from reviewtask_core.models import PullRequestRef, ReviewSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_STATUSES = {429, 500, 502, 503, 504}


class ReviewSource(ABC):
    """Where review data comes from. The CLI depends on this, not on GitHub directly."""

    @abstractmethod
    def fetch(self, ref: PullRequestRef) -> ReviewSnapshot:
        """Return every review and review comment currently on the PR."""

    @abstractmethod
    def resolve_branch(self, owner: str, repo: str, branch: str) -> PullRequestRef:
        """Return the single open PR whose head is ``branch``."""


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    return isinstance(exc, GithubException) and exc.status in _TRANSIENT_STATUSES


def _describe(exc: Exception) -> str:
    if isinstance(exc, GithubException):
        message = exc.data.get("message") if isinstance(exc.data, dict) else None
        return f"HTTP {exc.status}: {message or exc}"
    return f"{type(exc).__name__}: {exc}"


def derive_thread_roots(comments: list) -> dict[str, str]:
    """Map each REST comment id to the id of its thread root.

    A reply whose parent is missing from the listing maps to the missing id,
    which keeps replies to a deleted comment grouped together.
    """
    parents = {str(c.id): (str(c.in_reply_to_id) if c.in_reply_to_id else None) for c in comments}
    roots: dict[str, str] = {}
    for cid in parents:
        current = cid
        seen = {current}
        while parents.get(current) is not None:
            parent = parents[current]
            if parent not in parents or parent in seen:
                current = parent
                break
            seen.add(parent)
            current = parent
        roots[cid] = current
    return roots


class GitHubReviewSource(ReviewSource):
    def __init__(
        self,
        token: str,
        timeout: int = 30,
        max_retries: int = 3,
        workers: int = 4,
        include_review_bodies: bool = True,
        per_page: int = DEFAULT_PER_PAGE,
        backoff: float = 1.0,
        client=None,
    ):
        self.max_retries = max(1, max_retries)
        self.workers = max(1, workers)
        self.include_review_bodies = include_review_bodies
        self.per_page = per_page
        self.backoff = backoff
        self._client = client if client is not None else get_client(token, timeout=timeout, per_page=per_page)

    @classmethod
    def from_config(cls, config: dict, token: str) -> GitHubReviewSource:
        return cls(
            token=token,
            timeout=int(config.get("request_timeout", 30)),
            max_retries=int(config.get("max_retries", 3)),
            workers=int(config.get("fetch_workers", 4)),
            include_review_bodies=bool(config.get("include_review_bodies", True)),
        )

    # ------------------------------------------------------------------ #
    # ReviewSource                                                         #
    # ------------------------------------------------------------------ #

    def resolve_branch(self, owner: str, repo: str, branch: str) -> PullRequestRef:
        repo_obj = self._get_repo(f"{owner}/{repo}")
        pulls = self._call_with_retry(
            lambda: get_open_pulls_for_branch(repo_obj, owner, branch), f"list open PRs for {branch}"
        )
        numbers = sorted(p.number for p in pulls)
        if not numbers:
            raise NotFound(f"No open pull request found for branch '{branch}' in {owner}/{repo}.")
        if len(numbers) > 1:
            raise AmbiguousBranch(branch, numbers)
        return PullRequestRef(owner=owner, repo=repo, number=numbers[0])

    def fetch(self, ref: PullRequestRef) -> ReviewSnapshot:
        repo_obj = self._get_repo(ref.slug)
        try:
            pr = self._call_with_retry(lambda: get_pull(repo_obj, ref.number), f"load PR #{ref.number}")
        except UnknownObjectException:
            raise NotFound(f"PR #{ref.number} not found in {ref.slug}.")

        reviews = [review_from_github(r) for r in self._call_with_retry(lambda: get_reviews(pr), "list reviews")]
        raw_comments = self._fetch_review_comments(pr)
        threads = thread_index(self._fetch_threads(ref))
        roots = derive_thread_roots(raw_comments)

        comments = []
        for raw in raw_comments:
            cid = str(raw.id)
            root = roots[cid]
            # Threads longer than the GraphQL page are matched through their root.
            info = threads.get(cid) or threads.get(root)
            thread_id = info["thread_id"] if info else f"root-{root}"
            comments.append(comment_from_github(raw, thread_id, info))

        if self.include_review_bodies:
            for review in reviews:
                body_comment = review_body_comment(review)
                if body_comment is not None:
                    comments.append(body_comment)

        logger.debug("Fetched %d review(s) and %d comment(s) for %s", len(reviews), len(comments), ref)
        return ReviewSnapshot(
            pr=ref,
            title=pr.title or "",
            head_branch=pr.head.ref if pr.head else "",
            reviews=tuple(reviews),
            comments=tuple(comments),
        )

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _get_repo(self, slug: str):
        try:
            return self._call_with_retry(lambda: get_repo(self._client, slug), f"load repository {slug}")
        except UnknownObjectException:
            raise NotFound(f"Repository {slug} not found (or the token cannot see it).")

    def _fetch_review_comments(self, pr) -> list:
        """Fetch every inline review comment, pages in parallel, joined in page order."""
        listing = pr.get_review_comments()
        total = self._call_with_retry(lambda: listing.totalCount, "count review comments")
        pages = max(1, math.ceil(total / self.per_page))

        def load(page: int) -> list:
            return self._call_with_retry(lambda: list(listing.get_page(page)), f"review comments page {page + 1}")

        with ThreadPoolExecutor(max_workers=min(self.workers, pages)) as pool:
            futures = [pool.submit(load, page) for page in range(pages)]
            try:
                results = [f.result() for f in futures]
            except Exception:
                for f in futures:
                    f.cancel()
                raise
        return [comment for page in results for comment in page]

    def _fetch_threads(self, ref: PullRequestRef) -> list[dict]:
        """Walk the reviewThreads connection. Cursor pagination is inherently sequential."""
        threads: list[dict] = []
        cursor = None
        while True:
            page = self._call_with_retry(
                lambda: get_review_threads_page(self._client, ref.owner, ref.repo, ref.number, cursor),
                "list review threads",
            )
            threads.extend(page.get("nodes") or [])
            info = page.get("pageInfo") or {}
            if not (info.get("hasNextPage") and info.get("endCursor")):
                return threads
            cursor = info["endCursor"]

    def _call_with_retry(self, fn: Callable[[], T], what: str) -> T:
        """Run fn, retrying transient failures with exponential backoff.

        UnknownObjectException passes through untouched so callers can map a
        404 to NotFound with the right wording.
        """
        for attempt in range(self.max_retries):
            try:
                return fn()
            except UnknownObjectException:
                raise
            except BadCredentialsException as e:
                raise SourceUnavailable(
                    "GitHub rejected the token. Check GITHUB_TOKEN or run `gh auth login`."
                ) from e
            except (GithubException, requests.exceptions.RequestException) as e:
                if not _is_transient(e):
                    raise SourceUnavailable(f"Could not {what}: {_describe(e)}") from e
                if attempt == self.max_retries - 1:
                    raise SourceUnavailable(
                        f"Could not {what} after {self.max_retries} attempts: {_describe(e)}"
                    ) from e
                delay = self.backoff * 2**attempt
                logger.warning(
                    "GitHub error during '%s' (attempt %d/%d): %s. Retrying in %.0fs...",
                    what,
                    attempt + 1,
                    self.max_retries,
                    _describe(e),
                    delay,
                )
                time.sleep(delay)
        raise SourceUnavailable(f"Could not {what}.")  # unreachable: max_retries >= 1
