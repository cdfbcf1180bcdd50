"""
mod_registry.py
Read and write the per-game mod registry (mods.json).

Format: a JSON array, one object per installed mod, in load order
(index 0 = lowest priority, later entries override earlier ones):

    [
      {"name": "Foo", "path": "/home/deck/Games/.../Foo", "active": true,
       "mod_id": "1234", "file_id": "5678", "game": "fallout76"}
    ]

mod_id / file_id are the Nexus identifiers as strings; manually imported mods
carry the "local" sentinel in both.

Callers always load the full list, mutate it in memory and save the full list
back.  registry_lock() serialises that cycle between processes.
"""

from __future__ import annotations

import fcntl
import json
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from Utils.config_paths import get_registry_path
from Utils.errors import MalformedDataError, StorageError
from Utils.fileio import write_text_atomic

LOCAL_SOURCE = "local"


@dataclass
class Mod:
    name: str
    path: Path
    active: bool = False
    mod_id: str = LOCAL_SOURCE
    file_id: str = LOCAL_SOURCE
    game: str = ""

    @property
    def is_local(self) -> bool:
        """True for mods imported by hand rather than downloaded from Nexus."""
        return self.mod_id == LOCAL_SOURCE

    def to_json(self) -> dict:
        return {
            "name": self.name,
            "path": str(self.path),
            "active": self.active,
            "mod_id": self.mod_id,
            "file_id": self.file_id,
            "game": self.game,
        }


def _id_str(value, field_name: str, path: Path) -> str:
    if value is None or value == "":
        return LOCAL_SOURCE
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise MalformedDataError(f"'{field_name}' must be a string in {path}", path)
    return str(value)


def _mod_from_json(item, path: Path) -> Mod:
    if not isinstance(item, dict):
        raise MalformedDataError(f"registry entries must be objects in {path}", path)
    name = item.get("name")
    mod_path = item.get("path")
    if not isinstance(name, str) or not name:
        raise MalformedDataError(f"registry entry without a name in {path}", path)
    if not isinstance(mod_path, str) or not mod_path:
        raise MalformedDataError(f"registry entry {name!r} has no path in {path}", path)
    active = item.get("active", False)
    if not isinstance(active, bool):
        raise MalformedDataError(f"registry entry {name!r}: 'active' must be a boolean", path)
    return Mod(
        name=name,
        path=Path(mod_path),
        active=active,
        mod_id=_id_str(item.get("mod_id"), "mod_id", path),
        file_id=_id_str(item.get("file_id"), "file_id", path),
        game=str(item.get("game") or ""),
    )


def load_mods(game_id: str, registry_path: Path | None = None) -> list[Mod]:
    """
    Return the registered mods for *game_id* in load order.
    A missing registry file is not an error: it yields an empty list.
    """
    path = registry_path or get_registry_path(game_id)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise StorageError(f"failed to open {path}: {exc}", path) from exc

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedDataError(f"failed to decode {path}: {exc}", path) from exc
    if data is None:
        return []
    if not isinstance(data, list):
        raise MalformedDataError(f"{path} must contain a JSON array", path)

    mods = [_mod_from_json(item, path) for item in data]
    seen: set[str] = set()
    for m in mods:
        if m.name in seen:
            raise MalformedDataError(f"duplicate mod name {m.name!r} in {path}", path)
        seen.add(m.name)
        if not m.game:
            m.game = game_id
    return mods


def save_mods(game_id: str, mods: list[Mod], registry_path: Path | None = None) -> None:
    """Persist the full list atomically, creating the directory if needed."""
    names = [m.name for m in mods]
    if len(names) != len(set(names)):
        raise ValueError("mod names must be unique within a registry")
    path = registry_path or get_registry_path(game_id)
    payload = [m.to_json() for m in mods]
    write_text_atomic(path, json.dumps(payload, indent=2) + "\n")


@contextmanager
def registry_lock(game_id: str, registry_path: Path | None = None) -> Iterator[None]:
    """Hold an exclusive advisory lock on <registry>.lock for the block.

    Blocks until any other process holding the lock releases it.
    """
    path = registry_path or get_registry_path(game_id)
    lock_path = path.with_name(path.name + ".lock")
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fh = open(lock_path, "a")
    except OSError as exc:
        raise StorageError(f"failed to open lock file {lock_path}: {exc}", lock_path) from exc
    try:
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
        yield
    finally:
        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        fh.close()


def find_mod(mods: list[Mod], name: str) -> Mod | None:
    for m in mods:
        if m.name == name:
            return m
    return None


def find_by_source(mods: list[Mod], mod_id: str) -> Mod | None:
    """Return the entry downloaded from Nexus mod *mod_id*, if any.

    Local imports never match, whatever *mod_id* is.
    """
    if mod_id == LOCAL_SOURCE:
        return None
    for m in mods:
        if m.mod_id == mod_id:
            return m
    return None
