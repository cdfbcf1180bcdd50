"""
extractor.py
Extract a downloaded mod package into a directory.

Supports .zip, .7z, .rar and .tar.* archives.  7z and rar go through py7zr
and rarfile first and fall back to libarchive when those fail (solid or
BCJ2-compressed 7z archives, rar without an unrar binary).
"""

from __future__ import annotations

import os
import shutil
import tarfile
import zipfile
from pathlib import Path

import py7zr

from Utils.errors import StorageError

SUPPORTED_SUFFIXES = (".zip", ".7z", ".rar", ".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tar.xz")


class ExtractionError(StorageError):
    """The archive is unsupported, corrupt, or could not be written out."""


def archive_stem(archive_path: Path) -> str:
    """Return the file name without its archive suffix ("Foo.tar.gz" → "Foo")."""
    name = Path(archive_path).name
    lower = name.lower()
    for suffix in sorted(SUPPORTED_SUFFIXES, key=len, reverse=True):
        if lower.endswith(suffix):
            return name[: -len(suffix)]
    return Path(name).stem


def _reset_dir(dest: Path) -> None:
    shutil.rmtree(dest, ignore_errors=True)
    dest.mkdir(parents=True, exist_ok=True)


def _extract_with_libarchive(archive_path: Path, dest: Path) -> None:
    import libarchive

    with libarchive.file_reader(str(archive_path)) as arc:
        for entry in arc:
            rel = entry.pathname.lstrip("/")
            target = (dest / rel).resolve()
            if dest.resolve() not in target.parents and target != dest.resolve():
                raise ExtractionError(f"refusing to extract outside {dest}: {rel}", archive_path)
            if entry.isdir:
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as fh:
                for block in entry.get_blocks():
                    fh.write(block)


def extract_archive(archive_path: Path, dest_dir: Path, log_fn=None) -> Path:
    """Extract *archive_path* into *dest_dir* (created if needed).

    Returns *dest_dir*.  Raises ExtractionError for unsupported formats or
    when every available extractor fails.
    """
    _log = log_fn or (lambda _: None)
    archive_path = Path(archive_path)
    dest_dir = Path(dest_dir)
    lower = archive_path.name.lower()

    if not archive_path.is_file():
        raise ExtractionError(f"archive not found: {archive_path}", archive_path)
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ExtractionError(f"failed to create {dest_dir}: {exc}", dest_dir) from exc

    try:
        if lower.endswith(".zip"):
            with zipfile.ZipFile(archive_path, "r") as z:
                z.extractall(dest_dir)
        elif lower.endswith(".7z"):
            try:
                with py7zr.SevenZipFile(archive_path, "r") as z:
                    z.extractall(dest_dir)
            except Exception as e7:
                _log(f"py7zr failed ({e7}), retrying with libarchive…")
                _reset_dir(dest_dir)
                _extract_with_libarchive(archive_path, dest_dir)
        elif lower.endswith(".rar"):
            try:
                import rarfile
                with rarfile.RarFile(archive_path, "r") as r:
                    r.extractall(dest_dir)
            except Exception as e_rar:
                _log(f"rarfile failed ({e_rar}), trying libarchive…")
                _reset_dir(dest_dir)
                _extract_with_libarchive(archive_path, dest_dir)
        elif lower.endswith((".tar", ".tar.gz", ".tgz", ".tar.bz2", ".tar.xz")):
            with tarfile.open(archive_path, "r:*") as t:
                t.extractall(dest_dir, filter="data")
        else:
            raise ExtractionError(
                f"Unsupported archive format: {archive_path.name} "
                "(supported: .zip, .7z, .rar, .tar.gz)",
                archive_path,
            )
    except ExtractionError:
        raise
    except Exception as exc:
        # zipfile, tarfile, py7zr and libarchive each raise their own types
        raise ExtractionError(f"failed to extract {archive_path.name}: {exc}", archive_path) from exc

    count = sum(len(files) for _, _, files in os.walk(dest_dir))
    _log(f"Extracted {count} file(s) from {archive_path.name} → {dest_dir}")
    return dest_dir
