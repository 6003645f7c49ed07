"""Tests for the GitHub review source adapter.

PyGithub objects are replaced by MagicMocks wired to a fake client, so no
test touches the network. time.sleep is patched wherever retries happen.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
import requests
from github import BadCredentialsException, GithubException, UnknownObjectException

from reviewtask_core.errors import AmbiguousBranch, NotFound, SourceUnavailable
from reviewtask_core.gh.pull_request import (
    get_review_threads_page,
    review_body_comment,
    thread_index,
)
from reviewtask_core.models import PullRequestRef, ReviewMeta
from reviewtask_core.source import GitHubReviewSource, derive_thread_roots

REF = PullRequestRef("octo", "widgets", 7)
T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _raw(cid, body="fix this", reply_to=None, minute=0, position=5, login="alice"):
    comment = MagicMock()
    comment.id = cid
    comment.in_reply_to_id = reply_to
    comment.body = body
    comment.user.login = login
    comment.created_at = T0 + timedelta(minutes=minute)
    comment.path = "src/app.py"
    comment.line = 12
    comment.original_line = 10
    comment.position = position
    comment.html_url = f"https://github.com/octo/widgets/pull/7#discussion_r{cid}"
    comment.pull_request_review_id = 900
    return comment


def _review(rid, state="COMMENTED", body="", login="bob"):
    review = MagicMock()
    review.id = rid
    review.user.login = login
    review.state = state
    review.body = body
    review.submitted_at = T0
    return review


def _threads_response(nodes, has_next=False, cursor=None):
    return (
        {},
        {
            "data": {
                "repository": {
                    "pullRequest": {
                        "reviewThreads": {
                            "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
                            "nodes": nodes,
                        }
                    }
                }
            }
        },
    )


def _thread(tid, comment_ids, resolved=False, outdated=False):
    return {
        "id": tid,
        "isResolved": resolved,
        "isOutdated": outdated,
        "comments": {"nodes": [{"databaseId": cid} for cid in comment_ids]},
    }


def _make_client(comments=(), reviews=(), threads=(), per_page=100):
    client = MagicMock()
    repo = client.get_repo.return_value
    pr = repo.get_pull.return_value
    pr.title = "Add widgets"
    pr.head.ref = "feature/widgets"
    pr.get_reviews.return_value = list(reviews)

    listing = pr.get_review_comments.return_value
    listing.totalCount = len(comments)
    pages = [list(comments[i : i + per_page]) for i in range(0, max(len(comments), 1), per_page)]
    listing.get_page.side_effect = lambda page: pages[page]

    client.requester.graphql_query.return_value = _threads_response(list(threads))
    return client


def _source(client, **kwargs):
    kwargs.setdefault("backoff", 0)
    return GitHubReviewSource(token="tok", client=client, **kwargs)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class TestFetch:
    def test_builds_snapshot(self):
        client = _make_client(
            comments=[_raw(1, "rename foo"), _raw(2, "ok", reply_to=1, minute=1)],
            reviews=[_review(900, state="CHANGES_REQUESTED")],
            threads=[_thread("PRRT_a", [1, 2])],
        )
        snapshot = _source(client).fetch(REF)

        assert snapshot.pr == REF
        assert snapshot.title == "Add widgets"
        assert snapshot.head_branch == "feature/widgets"
        assert [r.state for r in snapshot.reviews] == ["CHANGES_REQUESTED"]
        assert [c.id for c in snapshot.comments] == ["1", "2"]
        assert {c.thread_id for c in snapshot.comments} == {"PRRT_a"}
        assert snapshot.comments[1].parent_id == "1"
        assert snapshot.comments[0].author == "alice"
        assert snapshot.comments[0].review_id == "900"
        client.get_repo.assert_called_once_with("octo/widgets")

    def test_pages_joined_in_page_order(self):
        comments = [_raw(i, minute=i) for i in range(1, 6)]
        client = _make_client(comments=comments, per_page=2)
        snapshot = _source(client, per_page=2, workers=3).fetch(REF)

        assert [c.id for c in snapshot.comments] == ["1", "2", "3", "4", "5"]
        listing = client.get_repo.return_value.get_pull.return_value.get_review_comments.return_value
        assert sorted(call.args[0] for call in listing.get_page.call_args_list) == [0, 1, 2]

    def test_thread_state_comes_from_graphql(self):
        client = _make_client(
            comments=[_raw(1), _raw(2)],
            threads=[_thread("PRRT_a", [1], resolved=True), _thread("PRRT_b", [2], outdated=True)],
        )
        first, second = _source(client).fetch(REF).comments
        assert (first.resolved, first.outdated) == (True, False)
        assert (second.resolved, second.outdated) == (False, True)

    def test_reply_missing_from_graphql_matched_through_root(self):
        client = _make_client(
            comments=[_raw(1), _raw(2, reply_to=1, minute=1)],
            threads=[_thread("PRRT_a", [1])],
        )
        assert [c.thread_id for c in _source(client).fetch(REF).comments] == ["PRRT_a", "PRRT_a"]

    def test_without_thread_data_falls_back_to_root_ids(self):
        client = _make_client(comments=[_raw(1, position=None), _raw(2, reply_to=1, minute=1)])
        first, second = _source(client).fetch(REF).comments
        assert first.thread_id == second.thread_id == "root-1"
        assert first.outdated is True
        assert second.outdated is False

    def test_outdated_comment_uses_original_line(self):
        raw = _raw(1)
        raw.line = None
        client = _make_client(comments=[raw])
        assert _source(client).fetch(REF).comments[0].line == 10

    def test_review_bodies_become_comments(self):
        client = _make_client(
            reviews=[
                _review(11, state="CHANGES_REQUESTED", body="Please add tests."),
                _review(12, state="APPROVED", body="Nice work"),
                _review(13, state="COMMENTED", body=""),
            ]
        )
        comments = _source(client).fetch(REF).comments
        assert [c.id for c in comments] == ["review-11"]
        assert comments[0].thread_id == "review-11"
        assert comments[0].author == "bob"

    def test_review_bodies_can_be_disabled(self):
        client = _make_client(reviews=[_review(11, state="CHANGES_REQUESTED", body="Please add tests.")])
        assert _source(client, include_review_bodies=False).fetch(REF).comments == ()

    def test_graphql_threads_paginated(self):
        client = _make_client(comments=[_raw(1), _raw(2)])
        client.requester.graphql_query.side_effect = [
            _threads_response([_thread("PRRT_a", [1])], has_next=True, cursor="abc"),
            _threads_response([_thread("PRRT_b", [2])]),
        ]
        comments = _source(client).fetch(REF).comments
        assert [c.thread_id for c in comments] == ["PRRT_a", "PRRT_b"]
        second_variables = client.requester.graphql_query.call_args_list[1].args[1]
        assert second_variables["cursor"] == "abc"


# ---------------------------------------------------------------------------
# Error mapping and retries
# ---------------------------------------------------------------------------


class TestErrors:
    def test_missing_pr_is_not_found(self):
        client = _make_client()
        client.get_repo.return_value.get_pull.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)
        with pytest.raises(NotFound, match="PR #7"):
            _source(client).fetch(REF)

    def test_missing_repo_is_not_found(self):
        client = _make_client()
        client.get_repo.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)
        with pytest.raises(NotFound, match="octo/widgets"):
            _source(client).fetch(REF)

    def test_bad_credentials_are_not_retried(self):
        client = _make_client()
        client.get_repo.side_effect = BadCredentialsException(401, {"message": "Bad credentials"}, None)
        with patch("reviewtask_core.source.time.sleep") as mock_sleep:
            with pytest.raises(SourceUnavailable, match="token"):
                _source(client).fetch(REF)
        mock_sleep.assert_not_called()

    def test_forbidden_fails_immediately(self):
        client = _make_client()
        client.get_repo.side_effect = GithubException(403, {"message": "Resource not accessible"}, None)
        with patch("reviewtask_core.source.time.sleep") as mock_sleep:
            with pytest.raises(SourceUnavailable, match="HTTP 403"):
                _source(client).fetch(REF)
        mock_sleep.assert_not_called()

    def test_transient_error_is_retried(self):
        client = _make_client(comments=[_raw(1)])
        repo = client.get_repo.return_value
        pr = repo.get_pull.return_value
        repo.get_pull.side_effect = [GithubException(502, {"message": "Bad Gateway"}, None), pr]

        with patch("reviewtask_core.source.time.sleep") as mock_sleep:
            snapshot = _source(client, backoff=1.0).fetch(REF)

        assert len(snapshot.comments) == 1
        mock_sleep.assert_called_once_with(1.0)

    def test_backoff_is_exponential_and_bounded(self):
        client = _make_client()
        client.get_repo.side_effect = GithubException(503, {"message": "Unavailable"}, None)

        with patch("reviewtask_core.source.time.sleep") as mock_sleep:
            with pytest.raises(SourceUnavailable, match="after 3 attempts"):
                _source(client, max_retries=3, backoff=1.0).fetch(REF)

        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]
        assert client.get_repo.call_count == 3

    def test_connection_errors_are_retried(self):
        client = _make_client()
        repo = client.get_repo.return_value
        client.get_repo.side_effect = [requests.exceptions.ConnectionError("reset"), repo]
        with patch("reviewtask_core.source.time.sleep"):
            assert _source(client).fetch(REF).pr == REF

    def test_timeout_surfaces_as_source_unavailable(self):
        client = _make_client()
        client.get_repo.side_effect = requests.exceptions.ReadTimeout("timed out")
        with patch("reviewtask_core.source.time.sleep"):
            with pytest.raises(SourceUnavailable):
                _source(client, max_retries=2).fetch(REF)

    def test_failing_page_aborts_the_fetch(self):
        client = _make_client(comments=[_raw(i) for i in range(1, 5)], per_page=2)
        listing = client.get_repo.return_value.get_pull.return_value.get_review_comments.return_value
        listing.get_page.side_effect = GithubException(500, {"message": "boom"}, None)
        with patch("reviewtask_core.source.time.sleep"):
            with pytest.raises(SourceUnavailable, match="review comments page"):
                _source(client, per_page=2).fetch(REF)

    def test_graphql_errors_surface(self):
        client = _make_client()
        client.requester.graphql_query.return_value = ({}, {"errors": [{"message": "Something went wrong"}]})
        with pytest.raises(SourceUnavailable, match="Something went wrong"):
            _source(client).fetch(REF)


# ---------------------------------------------------------------------------
# resolve_branch
# ---------------------------------------------------------------------------


class TestResolveBranch:
    def test_single_open_pr(self):
        client = _make_client()
        client.get_repo.return_value.get_pulls.return_value = [MagicMock(number=12)]
        ref = _source(client).resolve_branch("octo", "widgets", "feature/x")
        assert ref == PullRequestRef("octo", "widgets", 12)
        client.get_repo.return_value.get_pulls.assert_called_once_with(state="open", head="octo:feature/x")

    def test_no_open_pr(self):
        client = _make_client()
        client.get_repo.return_value.get_pulls.return_value = []
        with pytest.raises(NotFound, match="feature/x"):
            _source(client).resolve_branch("octo", "widgets", "feature/x")

    def test_several_open_prs_are_ambiguous(self):
        client = _make_client()
        client.get_repo.return_value.get_pulls.return_value = [MagicMock(number=20), MagicMock(number=14)]
        with pytest.raises(AmbiguousBranch) as exc_info:
            _source(client).resolve_branch("octo", "widgets", "feature/x")
        assert exc_info.value.numbers == [14, 20]
        assert "#14, #20" in str(exc_info.value)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_derive_thread_roots_follows_chains(self):
        comments = [_raw(1), _raw(2, reply_to=1), _raw(3, reply_to=2)]
        assert derive_thread_roots(comments) == {"1": "1", "2": "1", "3": "1"}

    def test_derive_thread_roots_groups_replies_to_deleted_comment(self):
        comments = [_raw(2, reply_to=99), _raw(3, reply_to=99)]
        assert derive_thread_roots(comments) == {"2": "99", "3": "99"}

    def test_thread_index(self):
        index = thread_index([_thread("PRRT_a", [1, 2], resolved=True)])
        assert index["1"] == {"thread_id": "PRRT_a", "resolved": True, "outdated": False}
        assert index["2"]["thread_id"] == "PRRT_a"

    def test_review_body_comment_skips_approvals(self):
        approved = ReviewMeta(id="1", reviewer="bob", state="APPROVED", body="great", submitted_at=T0)
        assert review_body_comment(approved) is None

    def test_review_body_comment_skips_pending_reviews(self):
        pending = ReviewMeta(id="1", reviewer="bob", state="COMMENTED", body="draft", submitted_at=None)
        assert review_body_comment(pending) is None

    def test_get_review_threads_page_omits_empty_cursor(self):
        client = MagicMock()
        client.requester.graphql_query.return_value = _threads_response([])
        get_review_threads_page(client, "octo", "widgets", 7, None)
        variables = client.requester.graphql_query.call_args.args[1]
        assert variables == {"owner": "octo", "repo": "widgets", "pr": 7}

    def test_from_config(self):
        with patch("reviewtask_core.source.get_client") as mock_client:
            source = GitHubReviewSource.from_config(
                {"request_timeout": 10, "max_retries": 5, "fetch_workers": 2, "include_review_bodies": False},
                "tok",
            )
        mock_client.assert_called_once_with("tok", timeout=10, per_page=100)
        assert source.max_retries == 5
        assert source.workers == 2
        assert source.include_review_bodies is False
