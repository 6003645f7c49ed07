"""Cross-process file locks (POSIX ``fcntl.flock``)."""

from __future__ import annotations

import fcntl
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from reviewtask_store.base import PersistenceError

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


@contextmanager
def file_lock(path: Path, timeout: float = 30.0) -> Iterator[None]:
    """Hold an exclusive lock on ``path`` for the duration of the block.

    Raises PersistenceError if the lock cannot be acquired within ``timeout``
    seconds (another fetch for the same PR is still running).
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "a+")
    except OSError as e:
        raise PersistenceError(f"Cannot create lock file {path}: {e}") from e

    try:
        deadline = time.monotonic() + timeout
        while True:
            try:
                fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise PersistenceError(f"Timed out waiting for lock {path}; is another fetch running?")
                logger.debug("Waiting for lock %s", path)
                time.sleep(_POLL_INTERVAL)
        try:
            yield
        finally:
            fcntl.flock(handle, fcntl.LOCK_UN)
    finally:
        handle.close()
