"""Atomic file writes and per-path write serialization."""

import logging
import os
import secrets
import shutil
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

# Entries vanish once no caller holds the lock, so the table tracks live
# files only
_locks: "weakref.WeakValueDictionary[Path, threading.RLock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def atomic_write(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp file and rename.

    Readers see either the old file or the new one, never a partial write.
    When the rename fails (e.g. across devices) the temp file is copied
    over the target. The temp file never outlives the call.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.parent / f".{path.name}.{secrets.token_hex(4)}.tmp"

    try:
        with open(temp_file, "w", encoding="utf-8") as f:
            f.write(content)
    except Exception:
        temp_file.unlink(missing_ok=True)
        raise

    try:
        os.replace(temp_file, path)
    except OSError as e:
        logger.debug(f"Rename of {temp_file} failed ({e}), copying instead")
        try:
            shutil.copyfile(temp_file, path)
        finally:
            temp_file.unlink(missing_ok=True)


def _lock_for(path: Path) -> threading.RLock:
    key = path.resolve()
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _locks[key] = lock
        return lock


@contextmanager
def file_lock(path: Path) -> Iterator[None]:
    """Serialize read-modify-write cycles on one file within this process.

    Keyed by resolved path, so different spellings of the same file share a
    lock. Reentrant. The guarded block must not await.
    """
    lock = _lock_for(path)
    with lock:
        yield
