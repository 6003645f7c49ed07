"""JsonFileStore — the default store: one JSON file per PR under the repo checkout.

Layout:
  <storage_dir>/<owner>/<repo>/PR-<number>/tasks.json
  <storage_dir>/<owner>/<repo>/PR-<number>/.lock

Files are plain, diff-friendly JSON so a developer can inspect or hand-edit
task state. Writes go to a temp file in the same directory followed by
os.replace(), which is atomic on POSIX and Windows.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import AbstractContextManager
from pathlib import Path

from reviewtask_store.base import BaseStore, PersistenceError
from reviewtask_store.locking import file_lock
from reviewtask_store.models import TaskRecord, TaskSetRecord

logger = logging.getLogger(__name__)

_TASKS_FILENAME = "tasks.json"
_LOCK_FILENAME = ".lock"


class JsonFileStore(BaseStore):
    def __init__(self, root: str = ".pr-review", lock_timeout: float = 30.0):
        self._root = Path(root)
        self._lock_timeout = lock_timeout

    def _pr_dir(self, owner: str, repo: str, pr_number: int) -> Path:
        return self._root / owner / repo / f"PR-{pr_number}"

    def load(self, owner: str, repo: str, pr_number: int) -> TaskSetRecord | None:
        path = self._pr_dir(owner, repo, pr_number) / _TASKS_FILENAME
        if not path.exists():
            return None
        return self._read(path)

    def save(self, record: TaskSetRecord) -> None:
        path = self._pr_dir(record.owner, record.repo, record.pr_number) / _TASKS_FILENAME
        content = json.dumps(self._to_dict(record), indent=2) + "\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tasks-", suffix=".tmp")
        except OSError as e:
            raise PersistenceError(f"Cannot write {path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(f"Cannot write {path}: {e}") from e
        logger.debug("Saved %d task(s) to %s", len(record.tasks), path)

    def lock(self, owner: str, repo: str, pr_number: int) -> AbstractContextManager:
        return file_lock(self._pr_dir(owner, repo, pr_number) / _LOCK_FILENAME, timeout=self._lock_timeout)

    def list_task_sets(self, repo: str | None = None) -> list[TaskSetRecord]:
        if not self._root.exists():
            return []
        pattern = f"{repo}/PR-*/{_TASKS_FILENAME}" if repo else f"*/*/PR-*/{_TASKS_FILENAME}"
        records = [self._read(path) for path in self._root.glob(pattern)]
        return sorted(records, key=lambda r: (r.owner, r.repo, r.pr_number))

    def _read(self, path: Path) -> TaskSetRecord:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Cannot read {path}: expected a JSON object")
        try:
            return self._from_dict(data)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot read {path}: {e}") from e

    @staticmethod
    def _to_dict(record: TaskSetRecord) -> dict:
        return {
            "owner": record.owner,
            "repo": record.repo,
            "pr_number": record.pr_number,
            "id_scheme": record.id_scheme,
            "fetched_at": record.fetched_at,
            "tasks": [
                {
                    "id": t.id,
                    "source_comment_ids": list(t.source_comment_ids),
                    "item_index": t.item_index,
                    "description": t.description,
                    "status": t.status,
                    "priority": t.priority,
                    "path": t.path,
                    "line": t.line,
                    "author": t.author,
                    "created_at": t.created_at,
                    "updated_at": t.updated_at,
                    "user_notes": t.user_notes,
                    "item_key": t.item_key,
                    "item_text": t.item_text,
                    "split_key": t.split_key,
                }
                for t in record.tasks
            ],
        }

    @staticmethod
    def _from_dict(d: dict) -> TaskSetRecord:
        """Build a record from parsed JSON, raising ValueError or TypeError on a malformed shape."""
        tasks = d.get("tasks", [])
        if not isinstance(tasks, list) or not all(isinstance(t, dict) for t in tasks):
            raise ValueError("'tasks' must be a list of objects")
        for t in tasks:
            if not isinstance(t.get("source_comment_ids", []), list):
                raise ValueError(f"task {t.get('id')!r}: 'source_comment_ids' must be a list")
        return TaskSetRecord(
            owner=str(d.get("owner", "")),
            repo=str(d.get("repo", "")),
            pr_number=int(d.get("pr_number", 0)),
            id_scheme=int(d.get("id_scheme", 0)),
            fetched_at=d.get("fetched_at") or "",
            tasks=[
                TaskRecord(
                    id=str(t.get("id", "")),
                    source_comment_ids=[str(i) for i in t.get("source_comment_ids", [])],
                    item_index=int(t.get("item_index", 0)),
                    description=t.get("description") or "",
                    status=t.get("status") or "pending",
                    priority=t.get("priority") or "medium",
                    path=t.get("path"),
                    line=int(t["line"]) if t.get("line") is not None else None,
                    author=t.get("author") or "",
                    created_at=t.get("created_at") or "",
                    updated_at=t.get("updated_at") or "",
                    user_notes=t.get("user_notes") or "",
                    item_key=t.get("item_key") or "",
                    item_text=t.get("item_text") or "",
                    split_key=t.get("split_key") or "",
                )
                for t in tasks
            ],
        )
