"""Per-file locking so at most one edit session runs against a task file."""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from pathlib import Path

from filelock import FileLock, Timeout


class LockTimeout(Exception):
    """Raised when a task file's lock cannot be acquired in time."""


def lock_path_for(tasks_path: Path) -> Path:
    """Return the sidecar lock path for *tasks_path* (``<name>.lock`` beside it)."""
    return tasks_path.with_name(f"{tasks_path.name}.lock")


@contextlib.contextmanager
def task_file_lock(tasks_path: Path, timeout: float = 10) -> Generator[None, None, None]:
    """Hold the lock for *tasks_path* for the duration of the block.

    Raises:
        LockTimeout: If the lock cannot be acquired within *timeout* seconds.
    """
    lock = FileLock(lock_path_for(tasks_path), timeout=timeout)
    try:
        lock.acquire()
    except Timeout:
        raise LockTimeout(
            f"Could not lock '{tasks_path.name}' within {timeout}s; another edit is in progress"
        ) from None
    try:
        yield
    finally:
        lock.release()
