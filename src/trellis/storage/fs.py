"""Atomic file writes."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def _fsync_directory(path: Path) -> None:
    """Fsync a directory so a rename into it is durable.

    Some platforms do not support fsync on directory descriptors, so
    ``OSError`` is ignored.
    """
    try:
        fd = os.open(str(path), os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        pass


def atomic_write(path: Path, content: str | bytes) -> None:
    """Write content to path atomically via temp file + fsync + rename.

    Raises:
        FileNotFoundError: If the parent directory does not exist.
    """
    parent = path.parent
    if not parent.is_dir():
        raise FileNotFoundError(f"Parent directory does not exist: {parent}")

    data = content.encode("utf-8") if isinstance(content, str) else content

    fd, tmp_path = tempfile.mkstemp(dir=parent, prefix=".tmp.")
    closed = False
    try:
        mv = memoryview(data)
        while mv:
            written = os.write(fd, mv)
            mv = mv[written:]
        os.fsync(fd)
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
        _fsync_directory(parent)
    except BaseException:
        if not closed:
            os.close(fd)
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
