"""Abstract store interface.

Every storage backend (JSON files, SQLite) implements this interface. The CLI
depends on BaseStore, not on a concrete backend, so backends are swappable
without touching CLI code.

Contract shared by all backends:
- save() replaces the whole task set for a PR atomically: readers see either
  the previous set or the new one, never a mix.
- lock() serializes writers for one PR. Callers hold it around the full
  load → reconcile → save cycle.
- Any failure to read or write raises PersistenceError and leaves the last
  good task set in place.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reviewtask_store.models import TaskSetRecord


class PersistenceError(Exception):
    """The local task store could not be read or written."""


class BaseStore(ABC):
    """Pluggable persistence layer for per-PR task sets."""

    @abstractmethod
    def load(self, owner: str, repo: str, pr_number: int) -> TaskSetRecord | None:
        """Return the stored task set for a PR, or None if it was never fetched."""

    @abstractmethod
    def save(self, record: TaskSetRecord) -> None:
        """Atomically replace the stored task set for record's PR."""

    @abstractmethod
    def lock(self, owner: str, repo: str, pr_number: int) -> AbstractContextManager:
        """Exclusive, cross-process lock on one PR's task set."""

    @abstractmethod
    def list_task_sets(self, repo: str | None = None) -> list[TaskSetRecord]:
        """Return all stored task sets, optionally only for one ``owner/name``.

        Ordered by (owner, repo, pr_number).
        """

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional; subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
