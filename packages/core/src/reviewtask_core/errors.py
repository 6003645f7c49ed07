"""Error taxonomy for the review-to-task pipeline.

Every error here propagates unchanged to the command boundary, where the CLI
turns it into a single user-facing message and a non-zero exit.
"""

from __future__ import annotations


class ReviewTaskError(Exception):
    """Base class for all pipeline errors."""


class SourceUnavailable(ReviewTaskError):
    """GitHub could not be reached, refused our credentials, or kept failing after retries."""


class NotFound(ReviewTaskError):
    """No pull request matches the requested number or branch."""


class AmbiguousBranch(ReviewTaskError):
    """The current branch is the head of more than one open pull request."""

    def __init__(self, branch: str, numbers: list[int]):
        self.branch = branch
        self.numbers = numbers
        listed = ", ".join(f"#{n}" for n in numbers)
        super().__init__(
            f"Branch '{branch}' has multiple open pull requests ({listed}). Pass a PR number explicitly."
        )


class ClassificationAmbiguous(ReviewTaskError):
    """A classifier could not decide how to split a unit into action items.

    Never reaches the user: the synthesizer catches it and falls back to one
    task for the whole unit.
    """
