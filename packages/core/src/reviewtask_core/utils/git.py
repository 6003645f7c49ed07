"""Read-only helpers for the local git checkout."""

from __future__ import annotations

import subprocess


def _git(*args: str) -> str | None:
    try:
        result = subprocess.run(["git", *args], capture_output=True, text=True, timeout=5)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def current_branch() -> str | None:
    """Return the checked-out branch name, or None when detached or outside a repo."""
    branch = _git("rev-parse", "--abbrev-ref", "HEAD")
    if branch in (None, "HEAD"):
        return None
    return branch


def repo_slug_from_url(url: str) -> str | None:
    """Extract ``owner/name`` from a GitHub remote URL.

    https://github.com/owner/repo.git  →  owner/repo
    git@github.com:owner/repo.git      →  owner/repo
    """
    if "github.com" not in url:
        return None
    slug = url.split("github.com")[-1].lstrip("/:").removesuffix(".git").rstrip("/")
    return slug if slug.count("/") == 1 else None


def detect_repo_from_git(remote: str = "origin") -> str | None:
    """Try to detect the GitHub repo slug from the git remote URL."""
    url = _git("remote", "get-url", remote)
    return repo_slug_from_url(url) if url else None
