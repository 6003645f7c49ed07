"""Per-invocation state shared by subcommands.

Nothing here runs until a subcommand asks for it: the root group only
records the config path, so `reviewtask`, `reviewtask --help` and
`reviewtask <cmd> --help` never read config, resolve tokens, open the store
or talk to GitHub.

The factories live in the CLI package so neither reviewtask_core nor
reviewtask_store know about the CLI config format.
"""

from __future__ import annotations

import click
import yaml

from reviewtask_cli.auth import resolve_github_token
from reviewtask_core.config import load_config
from reviewtask_core.source import GitHubReviewSource, ReviewSource
from reviewtask_core.utils.git import detect_repo_from_git
from reviewtask_store.base import BaseStore, PersistenceError


def build_store(config: dict) -> BaseStore:
    """Instantiate the configured store from .reviewtask.yml settings.

      store: json   → JsonFileStore under storage_dir (default)
      store: sqlite → SQLiteStore at store_path
    """
    if config.get("store") == "sqlite":
        from reviewtask_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.get("store_path", ".pr-review/reviewtask.db"))

    from reviewtask_store.json_file import JsonFileStore

    return JsonFileStore(root=config.get("storage_dir", ".pr-review"))


def build_source(config: dict, token: str) -> ReviewSource:
    return GitHubReviewSource.from_config(config, token)


class AppContext:
    def __init__(self, config_path: str):
        self.config_path = config_path
        self._config: dict | None = None
        self._store: BaseStore | None = None

    @property
    def config(self) -> dict:
        if self._config is None:
            try:
                self._config = load_config(self.config_path)
            except ValueError as e:
                raise click.UsageError(str(e))
            except yaml.YAMLError as e:
                raise click.ClickException(f"Cannot parse {self.config_path}: {e}")
        return self._config

    @property
    def store(self) -> BaseStore:
        if self._store is None:
            try:
                self._store = build_store(self.config)
            except PersistenceError as e:
                raise click.ClickException(str(e))
        return self._store

    def require_token(self) -> str:
        token = resolve_github_token()
        if not token:
            raise click.UsageError(
                "No GitHub token found. Set GITHUB_TOKEN or run `gh auth login` first.\n"
                "Create a token at https://github.com/settings/tokens"
            )
        return token

    def resolve_repo(self, repo: str | None) -> str:
        """Pick the repository: --repo, then the config file, then the git remote."""
        slug = repo or self.config.get("repo") or detect_repo_from_git()
        if not slug:
            raise click.UsageError("Could not detect the GitHub repository. Pass --repo owner/name.")
        return slug

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
