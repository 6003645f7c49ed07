from __future__ import annotations

from github import Auth, Github, GithubException

from reviewtask_core.models import ReviewComment, ReviewMeta

DEFAULT_PER_PAGE = 100

# Thread identity and resolution state are only exposed through GraphQL.
_THREADS_QUERY = """
query($owner: String!, $repo: String!, $pr: Int!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pr) {
      reviewThreads(first: 100, after: $cursor) {
        pageInfo { hasNextPage endCursor }
        nodes {
          id
          isResolved
          isOutdated
          comments(first: 100) {
            nodes { databaseId }
          }
        }
      }
    }
  }
}
"""

# Review states that carry a request worth tracking when the review has a body.
_ACTIONABLE_REVIEW_STATES = {"CHANGES_REQUESTED", "COMMENTED"}


def get_client(token: str, timeout: int = 30, per_page: int = DEFAULT_PER_PAGE) -> Github:
    # Retries are handled by the caller with our own backoff policy.
    return Github(auth=Auth.Token(token), timeout=timeout, per_page=per_page, retry=None)


def get_repo(client: Github, repo_name: str):
    return client.get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_open_pulls_for_branch(repo, owner: str, branch: str) -> list:
    return list(repo.get_pulls(state="open", head=f"{owner}:{branch}"))


def get_reviews(pr) -> list:
    return list(pr.get_reviews())


def get_review_threads_page(client: Github, owner: str, repo: str, pr_number: int, cursor: str | None) -> dict:
    """Return one page of the reviewThreads connection."""
    variables: dict = {"owner": owner, "repo": repo, "pr": pr_number}
    if cursor:
        variables["cursor"] = cursor
    _, result = client.requester.graphql_query(_THREADS_QUERY, variables)
    errors = result.get("errors")
    if errors:
        raise GithubException(400, {"message": errors[0].get("message", str(errors))}, None)
    pull = ((result.get("data") or {}).get("repository") or {}).get("pullRequest") or {}
    return pull.get("reviewThreads") or {}


def thread_index(threads: list[dict]) -> dict[str, dict]:
    """Map comment database id → {"thread_id", "resolved", "outdated"}."""
    index: dict[str, dict] = {}
    for thread in threads:
        info = {
            "thread_id": thread["id"],
            "resolved": bool(thread.get("isResolved")),
            "outdated": bool(thread.get("isOutdated")),
        }
        for node in (thread.get("comments") or {}).get("nodes") or []:
            if node.get("databaseId") is not None:
                index[str(node["databaseId"])] = info
    return index


def comment_from_github(comment, thread_id: str, thread_info: dict | None) -> ReviewComment:
    """Convert a PyGithub PullRequestComment into a ReviewComment."""
    line = comment.line if comment.line is not None else getattr(comment, "original_line", None)
    parent = comment.in_reply_to_id
    if thread_info is not None:
        resolved, outdated = thread_info["resolved"], thread_info["outdated"]
    else:
        # Without GraphQL data a missing diff position is the only outdated signal.
        resolved, outdated = False, comment.position is None
    return ReviewComment(
        id=str(comment.id),
        author=comment.user.login if comment.user else "ghost",
        body=comment.body or "",
        thread_id=thread_id,
        created_at=comment.created_at,
        path=comment.path,
        line=line,
        parent_id=str(parent) if parent else None,
        resolved=resolved,
        outdated=outdated,
        url=comment.html_url or "",
        review_id=str(comment.pull_request_review_id) if comment.pull_request_review_id else None,
    )


def review_from_github(review) -> ReviewMeta:
    return ReviewMeta(
        id=str(review.id),
        reviewer=review.user.login if review.user else "ghost",
        state=review.state or "",
        body=review.body or "",
        submitted_at=review.submitted_at,
    )


def review_body_comment(review: ReviewMeta, url: str = "") -> ReviewComment | None:
    """Turn a submitted review's top-level body into a standalone comment, if it asks for anything."""
    if review.state not in _ACTIONABLE_REVIEW_STATES or not review.body.strip() or review.submitted_at is None:
        return None
    key = f"review-{review.id}"
    return ReviewComment(
        id=key,
        author=review.reviewer,
        body=review.body,
        thread_id=key,
        created_at=review.submitted_at,
        url=url,
        review_id=review.id,
    )
