"""
fileio.py
Crash-safe writes for the JSON / INI files the manager owns.

write_text_atomic() writes to a temp file in the destination directory and
renames it over the target, so a crash leaves either the old or the new
content and never a truncated file.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from Utils.errors import StorageError


def write_text_atomic(path: Path, text: str) -> None:
    """Write *text* to *path* via temp-file-then-rename.

    Creates parent directories as needed.  Any OSError is re-raised as
    StorageError carrying *path*.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(
            f"failed to create directory {path.parent}: {exc}", path.parent
        ) from exc

    fd, tmp_name = -1, ""
    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fd = -1
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        if fd != -1:
            os.close(fd)
        if tmp_name:
            Path(tmp_name).unlink(missing_ok=True)
        raise StorageError(f"failed to write {path}: {exc}", path) from exc
