"""
vfs.py
Symlink overlay of mod archives inside the game's Data directory.

Provides find_archive_files(), sync_links() and check_links().
ModLifecycle calls sync_links() after every change to the set of active mods.

sync_links() never diffs.  It removes every symlink directly inside Data/
and recreates one link per archive of every active mod, so anything that
went wrong before (a crash mid-sync, a link deleted or added by hand, a mod
that moved) is corrected by simply running it again.  Regular files in
Data/ (the game's own archives) are never touched.

When two active mods ship an archive with the same file name, the mod later
in load order wins: its link replaces the earlier one.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from Utils.errors import SyncError
from Utils.mod_registry import Mod


def find_archive_files(mod_path: Path, archive_ext: str) -> list[Path]:
    """
    Return every file under *mod_path* whose extension matches *archive_ext*
    (case-insensitive), as absolute paths in a stable walk order: the files
    of a directory in name order, then its subdirectories in name order.

    Raises OSError if *mod_path* cannot be read.
    """
    ext = archive_ext.lower()
    root = Path(mod_path).absolute()
    if not root.is_dir():
        raise FileNotFoundError(f"mod directory does not exist: {root}")

    found: list[Path] = []

    def _onerror(exc: OSError) -> None:
        raise exc

    for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
        dirnames.sort()
        for name in sorted(filenames):
            if Path(name).suffix.lower() == ext:
                found.append(Path(dirpath) / name)
    return found


def _remove_links(data_dir: Path, _log) -> int:
    removed = 0
    try:
        entries = list(os.scandir(data_dir))
    except OSError as exc:
        raise SyncError(f"failed to read data directory {data_dir}: {exc}", data_dir) from exc
    for entry in entries:
        if not entry.is_symlink():
            continue
        try:
            os.unlink(entry.path)
        except OSError as exc:
            raise SyncError(
                f"failed to remove existing symlink at {entry.path}: {exc}",
                Path(entry.path),
            ) from exc
        removed += 1
    _log(f"  Removed {removed} existing link(s) from {data_dir.name}/.")
    return removed


def sync_links(data_dir: Path, mods: Iterable[Mod], archive_ext: str,
               log_fn=None) -> int:
    """Rebuild the overlay in *data_dir* from the active entries of *mods*.

    data_dir    : the game's Data directory
    mods        : registry entries in load order; inactive ones are skipped
    archive_ext : e.g. ".ba2"

    Returns the number of links present afterwards.  Stops at the first
    failure and raises SyncError naming the file or link involved.
    """
    _log = log_fn or (lambda _: None)
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise SyncError(f"data directory does not exist: {data_dir}", data_dir)

    _remove_links(data_dir, _log)

    created: dict[str, Path] = {}
    for mod in mods:
        if not mod.active:
            continue
        try:
            archives = find_archive_files(mod.path, archive_ext)
        except OSError as exc:
            raise SyncError(
                f"failed to find {archive_ext} files in mod {mod.name}: {exc}",
                Path(mod.path),
            ) from exc

        for target in archives:
            link = data_dir / target.name
            if target.name in created:
                _log(f"  {target.name}: {mod.name} overrides {created[target.name].parent}")
                try:
                    link.unlink()
                except OSError as exc:
                    raise SyncError(f"failed to replace symlink {link}: {exc}", link) from exc
            elif link.exists() or link.is_symlink():
                raise SyncError(
                    f"cannot link {target.name}: a file that is not a mod link "
                    f"already exists at {link}",
                    link,
                )
            try:
                os.symlink(target, link)
            except OSError as exc:
                raise SyncError(f"failed to create symlink for {target.name}: {exc}", link) from exc
            created[target.name] = target
            _log(f"  Linked {target.name} → {target}")

    _log(f"  {len(created)} link(s) in {data_dir.name}/.")
    return len(created)


@dataclass
class LinkReport:
    """Differences between the overlay on disk and the registry."""
    missing: list[str] = field(default_factory=list)      # expected, absent
    orphaned: list[str] = field(default_factory=list)     # symlink nobody owns
    wrong_target: list[str] = field(default_factory=list) # points elsewhere / dangling

    @property
    def in_sync(self) -> bool:
        return not (self.missing or self.orphaned or self.wrong_target)


def check_links(data_dir: Path, mods: Iterable[Mod], archive_ext: str) -> LinkReport:
    """Compare the symlinks in *data_dir* with what sync_links() would create.

    Read-only.  Mods whose directory has gone missing contribute nothing.
    """
    wanted: dict[str, Path] = {}
    for mod in mods:
        if mod.active and Path(mod.path).is_dir():
            for archive in find_archive_files(mod.path, archive_ext):
                wanted[archive.name] = archive

    report = LinkReport()
    present: dict[str, str] = {}
    for entry in os.scandir(data_dir):
        if entry.is_symlink():
            present[entry.name] = os.readlink(entry.path)

    for name, target in wanted.items():
        if name not in present:
            report.missing.append(name)
        elif Path(present[name]) != target or not target.exists():
            report.wrong_target.append(name)
    for name in present:
        if name not in wanted:
            report.orphaned.append(name)

    report.missing.sort()
    report.orphaned.sort()
    report.wrong_target.sort()
    return report
