"""Tests for the local git helpers."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from reviewtask_core.utils.git import current_branch, detect_repo_from_git, repo_slug_from_url


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://github.com/octo/widgets.git", "octo/widgets"),
        ("https://github.com/octo/widgets", "octo/widgets"),
        ("git@github.com:octo/widgets.git", "octo/widgets"),
        ("ssh://git@github.com/octo/widgets.git", "octo/widgets"),
        ("https://gitlab.com/octo/widgets.git", None),
        ("https://github.com/octo", None),
    ],
)
def test_repo_slug_from_url(url, expected):
    assert repo_slug_from_url(url) == expected


def _completed(stdout="", returncode=0):
    return MagicMock(stdout=stdout, returncode=returncode)


class TestGitCommands:
    def test_detect_repo_from_origin(self):
        with patch("reviewtask_core.utils.git.subprocess.run", return_value=_completed("git@github.com:o/r.git\n")):
            assert detect_repo_from_git() == "o/r"

    def test_detect_repo_outside_git(self):
        with patch("reviewtask_core.utils.git.subprocess.run", return_value=_completed(returncode=128)):
            assert detect_repo_from_git() is None

    def test_detect_repo_without_git_binary(self):
        with patch("reviewtask_core.utils.git.subprocess.run", side_effect=FileNotFoundError):
            assert detect_repo_from_git() is None

    def test_current_branch(self):
        with patch("reviewtask_core.utils.git.subprocess.run", return_value=_completed("feature/x\n")):
            assert current_branch() == "feature/x"

    def test_detached_head_has_no_branch(self):
        with patch("reviewtask_core.utils.git.subprocess.run", return_value=_completed("HEAD\n")):
            assert current_branch() is None

    def test_git_timeout(self):
        with patch(
            "reviewtask_core.utils.git.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="git", timeout=5),
        ):
            assert current_branch() is None
