"""
errors.py
Exception hierarchy shared by the registry, the archive list editor, the
overlay synchronizer and the lifecycle orchestrator.

  ModManagerError
    MalformedDataError     persisted JSON / INI could not be decoded
    StorageError           filesystem failure (permissions, missing dirs)
      ConfigNotFoundError  game INI missing where removal expects it
      SyncError            a link could not be removed or created
    IdentityConflictError  same Nexus mod, different file already installed
    ModNotFoundError       no registry entry with that name
    ModExistsError         name or Nexus file already registered
    GameNotFoundError      a game / data / prefix directory could not be found

Lower layers raise these with the original OSError chained (``from exc``);
ModLifecycle lets them propagate unchanged so the CLI can report them.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from Utils.mod_registry import Mod


class ModManagerError(Exception):
    """Base class for every error the mod manager reports to the user."""


class MalformedDataError(ModManagerError):
    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class StorageError(ModManagerError):
    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class ConfigNotFoundError(StorageError):
    pass


class SyncError(StorageError):
    """Raised when the overlay cannot be rebuilt.

    ``path`` is the link (or data directory) the failing operation touched.
    Links created earlier in the same pass are left in place; re-running the
    sync removes and rebuilds all of them.
    """


class IdentityConflictError(ModManagerError):
    """A different file of the same Nexus mod is already registered."""

    def __init__(self, existing: "Mod", file_id: str):
        super().__init__(
            f"A different version of {existing.name} is already installed "
            f"(file {existing.file_id}, requested {file_id})."
        )
        self.existing = existing
        self.file_id = file_id


class ModNotFoundError(ModManagerError):
    def __init__(self, name: str):
        super().__init__(f"mod not found: {name}")
        self.name = name


class ModExistsError(ModManagerError):
    def __init__(self, message: str, name: str = ""):
        super().__init__(message)
        self.name = name


class GameNotFoundError(ModManagerError):
    pass
