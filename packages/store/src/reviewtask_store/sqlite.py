"""SQLiteStore — a single database file for developers tracking many PRs.

Schema:
  task_sets — one row per PR: the id scheme and last fetch time.
  tasks     — one row per task, ordered within its PR by ``position``.

save() replaces a PR's rows inside one transaction, so a crash mid-write
rolls back to the previous task set. Writers for the same PR are serialized
with a lock file next to the database.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import AbstractContextManager
from pathlib import Path

from reviewtask_store.base import BaseStore, PersistenceError
from reviewtask_store.locking import file_lock
from reviewtask_store.models import TaskRecord, TaskSetRecord

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS task_sets (
    owner       TEXT NOT NULL,
    repo        TEXT NOT NULL,
    pr_number   INTEGER NOT NULL,
    id_scheme   INTEGER NOT NULL DEFAULT 0,
    fetched_at  TEXT,
    PRIMARY KEY (owner, repo, pr_number)
);
CREATE TABLE IF NOT EXISTS tasks (
    owner               TEXT NOT NULL,
    repo                TEXT NOT NULL,
    pr_number           INTEGER NOT NULL,
    position            INTEGER NOT NULL,
    id                  TEXT NOT NULL,
    source_comment_ids  TEXT DEFAULT '[]',
    item_index          INTEGER DEFAULT 0,
    description         TEXT,
    status              TEXT,
    priority            TEXT,
    path                TEXT,
    line                INTEGER,
    author              TEXT,
    created_at          TEXT,
    updated_at          TEXT,
    user_notes          TEXT,
    item_key            TEXT DEFAULT '',
    item_text           TEXT DEFAULT '',
    split_key           TEXT DEFAULT '',
    PRIMARY KEY (owner, repo, pr_number, id)
);
CREATE INDEX IF NOT EXISTS idx_tasks_pr ON tasks (owner, repo, pr_number, position);
"""

# Task columns that databases created by earlier versions lack; added on open.
_ADDED_TASK_COLUMNS = ("item_key", "item_text", "split_key")


class SQLiteStore(BaseStore):
    """Stores task sets in a local SQLite database file.

    Configure via .reviewtask.yml: `store: sqlite` and optionally
    `store_path: /path/to/reviewtask.db`.
    """

    def __init__(self, db_path: str = ".pr-review/reviewtask.db", lock_timeout: float = 30.0):
        self._db_path = Path(db_path)
        self._lock_timeout = lock_timeout
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._db_path), timeout=lock_timeout)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
            self._add_missing_columns()
            self._conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open task database {db_path}: {e}") from e

    def load(self, owner: str, repo: str, pr_number: int) -> TaskSetRecord | None:
        try:
            header = self._conn.execute(
                "SELECT * FROM task_sets WHERE owner=? AND repo=? AND pr_number=?",
                (owner, repo, pr_number),
            ).fetchone()
            if header is None:
                return None
            return self._with_tasks(header)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot read tasks for {owner}/{repo}#{pr_number}: {e}") from e

    def save(self, record: TaskSetRecord) -> None:
        key = (record.owner, record.repo, record.pr_number)
        try:
            with self._conn:  # commits on success, rolls back on any exception
                self._conn.execute(
                    """
                    INSERT INTO task_sets (owner, repo, pr_number, id_scheme, fetched_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT (owner, repo, pr_number)
                    DO UPDATE SET id_scheme=excluded.id_scheme, fetched_at=excluded.fetched_at
                    """,
                    (*key, record.id_scheme, record.fetched_at),
                )
                self._conn.execute("DELETE FROM tasks WHERE owner=? AND repo=? AND pr_number=?", key)
                self._conn.executemany(
                    """
                    INSERT INTO tasks
                      (owner, repo, pr_number, position, id, source_comment_ids, item_index,
                       description, status, priority, path, line, author,
                       created_at, updated_at, user_notes, item_key, item_text, split_key)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            *key,
                            position,
                            t.id,
                            json.dumps(list(t.source_comment_ids)),
                            t.item_index,
                            t.description,
                            t.status,
                            t.priority,
                            t.path,
                            t.line,
                            t.author,
                            t.created_at,
                            t.updated_at,
                            t.user_notes,
                            t.item_key,
                            t.item_text,
                            t.split_key,
                        )
                        for position, t in enumerate(record.tasks)
                    ],
                )
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot write tasks for {record.slug}#{record.pr_number}: {e}") from e

    def lock(self, owner: str, repo: str, pr_number: int) -> AbstractContextManager:
        lock_path = self._db_path.parent / "locks" / f"{owner}__{repo}__{pr_number}.lock"
        return file_lock(lock_path, timeout=self._lock_timeout)

    def list_task_sets(self, repo: str | None = None) -> list[TaskSetRecord]:
        try:
            if repo is not None:
                owner, _, name = repo.partition("/")
                headers = self._conn.execute(
                    "SELECT * FROM task_sets WHERE owner=? AND repo=? ORDER BY pr_number",
                    (owner, name),
                ).fetchall()
            else:
                headers = self._conn.execute("SELECT * FROM task_sets ORDER BY owner, repo, pr_number").fetchall()
            return [self._with_tasks(h) for h in headers]
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot list task sets: {e}") from e

    def close(self) -> None:
        self._conn.close()

    def _add_missing_columns(self) -> None:
        existing = {row["name"] for row in self._conn.execute("PRAGMA table_info(tasks)")}
        for column in _ADDED_TASK_COLUMNS:
            if column not in existing:
                logger.info("Upgrading %s: adding tasks.%s", self._db_path, column)
                self._conn.execute(f"ALTER TABLE tasks ADD COLUMN {column} TEXT DEFAULT ''")

    def _with_tasks(self, header: sqlite3.Row) -> TaskSetRecord:
        rows = self._conn.execute(
            "SELECT * FROM tasks WHERE owner=? AND repo=? AND pr_number=? ORDER BY position",
            (header["owner"], header["repo"], header["pr_number"]),
        ).fetchall()
        return TaskSetRecord(
            owner=header["owner"],
            repo=header["repo"],
            pr_number=header["pr_number"],
            id_scheme=header["id_scheme"],
            fetched_at=header["fetched_at"] or "",
            tasks=[self._row_to_task(r) for r in rows],
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> TaskRecord:
        try:
            source_comment_ids = json.loads(row["source_comment_ids"] or "[]")
        except ValueError as e:
            raise PersistenceError(f"Cannot read task {row['id']}: bad source_comment_ids: {e}") from e
        if not isinstance(source_comment_ids, list):
            raise PersistenceError(f"Cannot read task {row['id']}: source_comment_ids is not a list")
        return TaskRecord(
            id=row["id"],
            source_comment_ids=[str(i) for i in source_comment_ids],
            item_index=row["item_index"] or 0,
            description=row["description"] or "",
            status=row["status"] or "pending",
            priority=row["priority"] or "medium",
            path=row["path"],
            line=row["line"],
            author=row["author"] or "",
            created_at=row["created_at"] or "",
            updated_at=row["updated_at"] or "",
            user_notes=row["user_notes"] or "",
            item_key=row["item_key"] or "",
            item_text=row["item_text"] or "",
            split_key=row["split_key"] or "",
        )
