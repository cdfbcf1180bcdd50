"""
mod_lifecycle.py
Install, activate, deactivate, update, reorder and uninstall mods while
keeping three stores consistent:

  registry     mods.json                        (source of truth)
  archive list [Archive] key of the game INI    (projection)
  overlay      symlinks in the game's Data/     (projection)

ModLifecycle is the only code that touches more than one of them.  Each
operation loads the registry, mutates it, saves it, then updates the
projections.  Any failing step raises and the remaining steps are skipped;
since adding/removing list entries is idempotent and sync_links() rebuilds
the overlay from scratch, re-running the same operation repairs whatever a
failure left behind.

Per-mod states:  absent --install--> inactive --activate--> active
                 active --deactivate--> inactive --uninstall--> absent
"""

from __future__ import annotations

import os
import shutil
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from Games.base_game import Game
from Utils.app_config import AppConfig
from Utils.app_log import app_log
from Utils.archive_list import add_archive, read_archive_list, remove_archive, set_archive_list
from Utils.config_paths import get_mods_root, get_registry_path
from Utils.errors import (
    IdentityConflictError,
    ModExistsError,
    ModNotFoundError,
    StorageError,
)
from Utils.extractor import archive_stem, extract_archive
from Utils.game_loader import get_game
from Utils.game_locator import find_compat_prefix, find_data_dir
from Utils.mod_registry import (
    LOCAL_SOURCE,
    Mod,
    find_by_source,
    find_mod,
    load_mods,
    registry_lock,
    save_mods,
)
from Utils.vfs import LinkReport, check_links, find_archive_files, sync_links


@dataclass
class StatusReport:
    """Read-only comparison of the registry with both projections."""
    links: LinkReport
    missing_from_list: list[str] = field(default_factory=list)  # active archive not in INI
    stale_in_list: list[str] = field(default_factory=list)      # inactive mod's archive in INI

    @property
    def in_sync(self) -> bool:
        return self.links.in_sync and not (self.missing_from_list or self.stale_in_list)


class ModLifecycle:
    """
    Orchestrates mod state transitions for one game.

    Parameters
    ----------
    game          : the Game being modded.
    data_dir      : the game's Data directory (overlay lives here).
    ini_path      : the game INI holding the archive list.
    mods_dir      : where installed mod payloads are stored.
    registry_path : mods.json; defaults to the per-game config location.
    log_fn        : message sink; defaults to app_log.
    """

    def __init__(self, game: Game, data_dir: Path, ini_path: Path, mods_dir: Path,
                 registry_path: Path | None = None, log_fn=None):
        self.game = game
        self.data_dir = Path(data_dir)
        self.ini_path = Path(ini_path)
        self.mods_dir = Path(mods_dir)
        self.registry_path = registry_path or get_registry_path(game.game_id)
        self._log = log_fn or app_log
        self._lock_depth = 0

    @classmethod
    def from_config(cls, config: AppConfig, log_fn=None) -> ModLifecycle:
        """Resolve every path for config.current_game via the game locator."""
        game = get_game(config.current_game)
        data_dir = find_data_dir(game, config.game_path_override(game.game_id))
        compat = find_compat_prefix(game, config.compatdata_override(game.game_id))
        return cls(
            game=game,
            data_dir=data_dir,
            ini_path=game.custom_ini_path(compat),
            mods_dir=game.mods_dir(get_mods_root()),
            log_fn=log_fn,
        )

    # -- registry helpers ---------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        """Hold the registry lock; re-entrant within this object."""
        if self._lock_depth:
            self._lock_depth += 1
            try:
                yield
            finally:
                self._lock_depth -= 1
            return
        with registry_lock(self.game.game_id, self.registry_path):
            self._lock_depth = 1
            try:
                yield
            finally:
                self._lock_depth = 0

    def _load(self) -> list[Mod]:
        return load_mods(self.game.game_id, self.registry_path)

    def _save(self, mods: list[Mod]) -> None:
        save_mods(self.game.game_id, mods, self.registry_path)

    def _require(self, mods: list[Mod], name: str) -> Mod:
        mod = find_mod(mods, name)
        if mod is None:
            raise ModNotFoundError(name)
        return mod

    def list_mods(self) -> list[Mod]:
        """Return the registry in load order."""
        return self._load()

    def _archive_names(self, mod: Mod) -> list[str]:
        """Archive file names that belong to *mod*.

        Normally read from the mod's directory.  If the directory has gone
        missing, fall back to the overlay: links in Data/ whose target lies
        inside the mod's path still name its archives.
        """
        if Path(mod.path).is_dir():
            try:
                return [p.name for p in find_archive_files(mod.path, self.game.archive_ext)]
            except OSError as exc:
                raise StorageError(
                    f"failed to find {self.game.archive_ext} files in mod {mod.name}: {exc}",
                    Path(mod.path),
                ) from exc

        self._log(f"WARN: {mod.path} is missing, recovering archive names from {self.data_dir.name}/ links.")
        root = Path(mod.path).absolute()
        names: list[str] = []
        if self.data_dir.is_dir():
            for entry in sorted(os.scandir(self.data_dir), key=lambda e: e.name):
                if entry.is_symlink() and root in Path(os.readlink(entry.path)).parents:
                    names.append(entry.name)
        return names

    def _sync(self, mods: list[Mod]) -> int:
        self._log(f"Syncing links in {self.data_dir} ...")
        count = sync_links(self.data_dir, mods, self.game.archive_ext, log_fn=self._log)
        self._log(f"Links synced: {count} archive(s) linked.")
        return count

    def _active_archive_order(self, mods: list[Mod]) -> list[str]:
        names: list[str] = []
        for m in mods:
            if m.active:
                names.extend(self._archive_names(m))
        return names

    # -- install --------------------------------------------------------------

    def install(self, name: str, path: Path, mod_id: str = LOCAL_SOURCE,
                file_id: str = LOCAL_SOURCE) -> Mod:
        """Register an already unpacked mod directory as inactive.

        Touches neither the archive list nor the overlay.
        Raises ModExistsError when the name or the exact Nexus file is already
        registered, IdentityConflictError when another file of the same Nexus
        mod is (use update() for that).
        """
        path = Path(path).absolute()
        if not path.is_dir():
            raise StorageError(f"mod directory does not exist: {path}", path)

        with self._locked():
            mods = self._load()
            if find_mod(mods, name) is not None:
                raise ModExistsError(f"a mod named {name!r} is already installed", name)
            same_source = find_by_source(mods, mod_id)
            if same_source is not None:
                if same_source.file_id == file_id:
                    raise ModExistsError(
                        f"{same_source.name} is already installed", same_source.name)
                raise IdentityConflictError(same_source, file_id)

            mod = Mod(name=name, path=path, active=False,
                      mod_id=mod_id, file_id=file_id, game=self.game.game_id)
            mods.append(mod)
            self._save(mods)
        self._log(f"Installed {name} ({path}).")
        return mod

    def install_local(self, archive_file: Path) -> Mod:
        """Import a single archive file (e.g. Foo.ba2) as the mod "Foo".

        The file is copied into <mods_dir>/Foo/ and registered with "local"
        source ids.
        """
        archive_file = Path(archive_file)
        if not archive_file.is_file():
            raise StorageError(f"file not found: {archive_file}", archive_file)
        name = archive_file.stem
        dest_dir = self.mods_dir / name

        with self._locked():
            if find_mod(self._load(), name) is not None:
                raise ModExistsError(f"a mod named {name!r} is already installed", name)
            try:
                dest_dir.mkdir(parents=True, exist_ok=True)
                shutil.copy2(archive_file, dest_dir / archive_file.name)
            except OSError as exc:
                raise StorageError(f"failed to copy {archive_file.name} into {dest_dir}: {exc}",
                                   dest_dir) from exc
            return self.install(name, dest_dir)

    def install_package(self, package: Path, mod_id: str = LOCAL_SOURCE,
                        file_id: str = LOCAL_SOURCE, keep_package: bool = False) -> Mod:
        """Extract a downloaded package into <mods_dir>/<stem>/ and register it.

        The package is deleted afterwards unless *keep_package*.  A failed
        extraction removes the half-written directory.
        """
        package = Path(package)
        name = archive_stem(package)
        dest_dir = self.mods_dir / name

        with self._locked():
            mods = self._load()
            if find_mod(mods, name) is not None:
                raise ModExistsError(f"a mod named {name!r} is already installed", name)
            same_source = find_by_source(mods, mod_id)
            if same_source is not None and same_source.file_id != file_id:
                raise IdentityConflictError(same_source, file_id)

            self._log(f"Extracting {package.name} ...")
            try:
                extract_archive(package, dest_dir, log_fn=self._log)
            except Exception:
                shutil.rmtree(dest_dir, ignore_errors=True)
                raise
            mod = self.install(name, dest_dir, mod_id=mod_id, file_id=file_id)

        if not keep_package:
            try:
                package.unlink()
            except OSError as exc:
                self._log(f"WARN: failed to remove archive {package}: {exc}")
        return mod

    # -- activate / deactivate -----------------------------------------------

    def activate(self, name: str) -> Mod:
        """inactive → active.

        Order: persist the flag, add each archive to the list, rebuild links.
        Safe to call again on an active mod to repair a partial activation.
        """
        with self._locked():
            mods = self._load()
            mod = self._require(mods, name)
            if not Path(mod.path).is_dir():
                raise StorageError(f"mod directory does not exist: {mod.path}", Path(mod.path))
            archives = self._archive_names(mod)

            mod.active = True
            self._save(mods)

            for archive in archives:
                if add_archive(self.ini_path, archive, self.game.archive_list_key):
                    self._log(f"  Added {archive} to {self.ini_path.name}.")
            self._sync(mods)
        self._log(f"Mod {name} activated.")
        return mod

    def deactivate(self, name: str) -> Mod:
        """active → inactive; mirror of activate().

        Archive names that another active mod also ships stay listed.
        Idempotent, so uninstall() runs it whatever the stored flag says.
        """
        with self._locked():
            mods = self._load()
            mod = self._require(mods, name)
            archives = self._archive_names(mod)

            mod.active = False
            self._save(mods)
            still_needed = {n.lower() for n in self._active_archive_order(mods)}

            for archive in archives:
                if archive.lower() in still_needed:
                    continue
                if remove_archive(self.ini_path, archive, self.game.archive_list_key):
                    self._log(f"  Removed {archive} from {self.ini_path.name}.")
            self._sync(mods)
        self._log(f"Mod {name} deactivated.")
        return mod

    # -- uninstall / update ------------------------------------------------------

    def uninstall(self, name: str) -> None:
        """Remove a mod completely.

        The mod is deactivated first, even when already flagged inactive, so
        that no link or list entry survives a deactivation that failed half
        way. Only then is the directory removed and the registry entry dropped.
        """
        with self._locked():
            mod = self._require(self._load(), name)
            self.deactivate(name)

            if Path(mod.path).exists():
                try:
                    shutil.rmtree(mod.path)
                except OSError as exc:
                    raise StorageError(f"failed to remove mod files at {mod.path}: {exc}",
                                       Path(mod.path)) from exc

            mods = [m for m in self._load() if m.name != name]
            self._save(mods)
        self._log(f"Mod {name} uninstalled.")

    def find_installed_source(self, mod_id: str) -> Mod | None:
        """Return the registered entry downloaded from Nexus mod *mod_id*."""
        return find_by_source(self._load(), mod_id)

    def update(self, old_name: str, package: Path, mod_id: str, file_id: str) -> Mod:
        """Replace *old_name* with a new file of the same mod.

        The caller has already confirmed the replacement.  The old entry is
        deactivated (if active), its files deleted and its entry dropped; the
        new package is then installed as inactive.
        """
        with self._locked():
            old = self._require(self._load(), old_name)
            self._log(f"Replacing {old.name} (file {old.file_id}) with file {file_id} ...")
            self.uninstall(old.name)
            return self.install_package(package, mod_id=mod_id, file_id=file_id)

    # -- load order ---------------------------------------------------------------

    def move(self, name: str, offset: int) -> list[Mod]:
        """Move a mod *offset* places in load order (negative = earlier).

        The archive list is rewritten from the new order of active mods and
        the overlay is rebuilt so that name collisions resolve the new way.
        """
        with self._locked():
            mods = self._load()
            mod = self._require(mods, name)
            index = mods.index(mod)
            new_index = max(0, min(len(mods) - 1, index + offset))
            if new_index == index:
                return mods
            mods.insert(new_index, mods.pop(index))
            self._save(mods)
            self._log(f"Moved {name} to position {new_index + 1} of {len(mods)}.")
            self._refresh_projections(mods)
        return mods

    def _refresh_projections(self, mods: list[Mod]) -> None:
        archives = self._active_archive_order(mods)
        set_archive_list(self.ini_path, archives, self.game.archive_list_key)
        self._log(f"  Wrote {len(archives)} archive(s) to {self.ini_path.name}.")
        self._sync(mods)

    def rebuild(self) -> None:
        """Rewrite the archive list and the overlay from the registry alone."""
        with self._locked():
            self._refresh_projections(self._load())

    def sync(self) -> int:
        """Rebuild only the overlay."""
        with self._locked():
            return self._sync(self._load())

    def status(self) -> StatusReport:
        """Compare the registry with both projections without changing anything."""
        mods = self._load()
        report = StatusReport(links=check_links(self.data_dir, mods, self.game.archive_ext))
        listed = {n.lower() for n in read_archive_list(self.ini_path, self.game.archive_list_key)}
        needed = {n.lower() for n in self._active_archive_order(mods)}
        for m in mods:
            if not Path(m.path).is_dir():
                continue
            for archive in self._archive_names(m):
                if m.active and archive.lower() not in listed:
                    report.missing_from_list.append(archive)
                elif not m.active and archive.lower() in listed and archive.lower() not in needed:
                    report.stale_in_list.append(archive)
        return report
