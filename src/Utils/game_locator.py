"""
game_locator.py
Locate a game's install directory, Data directory and Proton compatdata
directory across all configured Steam libraries.
No UI; game-specific knowledge comes from the Game record passed in.

Every finder takes an optional user override.  An override that exists on
disk always wins; an override that is set but missing raises
GameNotFoundError rather than silently falling back to auto-discovery.
"""

from __future__ import annotations

import re
from pathlib import Path

from Games.base_game import Game
from Utils.errors import GameNotFoundError

# ---------------------------------------------------------------------------
# Known Steam base directories for different install methods
# ---------------------------------------------------------------------------
_HOME = Path.home()

STEAM_CANDIDATES: list[Path] = [
    _HOME / ".steam" / "steam",                                                     # Symlink
    _HOME / ".local" / "share" / "Steam",                                          # Standard
    _HOME / ".var" / "app" / "com.valvesoftware.Steam" / ".local" / "share" / "Steam",  # Flatpak
    _HOME / "snap" / "steam" / "common" / ".local" / "share" / "Steam",            # Snap
]

_VDF_FILENAME = "libraryfolders.vdf"
_PATH_RE = re.compile(r'"path"\s+"([^"]+)"')


# ---------------------------------------------------------------------------
# Steam libraries
# ---------------------------------------------------------------------------

def find_steam_roots(candidates: list[Path] | None = None) -> list[Path]:
    """Return the Steam root directories that exist, deduplicated."""
    seen: set[Path] = set()
    roots: list[Path] = []
    for root in candidates if candidates is not None else STEAM_CANDIDATES:
        if not root.is_dir():
            continue
        resolved = root.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        roots.append(root)
    return roots


def parse_vdf_libraries(vdf_path: Path) -> list[Path]:
    """
    Parse a libraryfolders.vdf file and return all steamapps/common paths
    that currently exist on disk.

    The VDF format contains lines like:
        "path"    "/home/deck/.local/share/Steam"
    We extract every "path" value and append steamapps/common to each.
    """
    libraries: list[Path] = []
    try:
        text = vdf_path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return libraries

    for match in _PATH_RE.finditer(text):
        common = Path(match.group(1)) / "steamapps" / "common"
        if common.is_dir():
            libraries.append(common)
    return libraries


def find_steam_libraries(candidates: list[Path] | None = None) -> list[Path]:
    """
    Return every existing steamapps/common/ directory: the one inside each
    Steam root first, then any extra library listed in libraryfolders.vdf.
    """
    seen: set[Path] = set()
    libraries: list[Path] = []

    def _add(common: Path) -> None:
        resolved = common.resolve()
        if resolved not in seen:
            seen.add(resolved)
            libraries.append(common)

    for root in find_steam_roots(candidates):
        own = root / "steamapps" / "common"
        if own.is_dir():
            _add(own)
        for common in parse_vdf_libraries(root / "steamapps" / _VDF_FILENAME):
            _add(common)
    return libraries


# ---------------------------------------------------------------------------
# Per-game lookups
# ---------------------------------------------------------------------------

def _check_override(override: str | Path | None, what: str) -> Path | None:
    if not override:
        return None
    path = Path(override).expanduser()
    if path.is_dir():
        return path
    raise GameNotFoundError(f"{what} not found at configured path: {path}")


def find_game_dir(game: Game, override: str | Path | None = None,
                  candidates: list[Path] | None = None) -> Path:
    """Return the game's install root.

    Searches <library>/<install_folder> in every Steam library.  The folder
    name match is exact first, then case-insensitive.
    """
    custom = _check_override(override, f"{game.name} game directory")
    if custom is not None:
        return custom

    wanted = game.install_folder.lower()
    for common in find_steam_libraries(candidates):
        exact = common / game.install_folder
        if exact.is_dir():
            return exact
        try:
            for entry in common.iterdir():
                if entry.name.lower() == wanted and entry.is_dir():
                    return entry
        except PermissionError:
            continue

    raise GameNotFoundError(
        f"{game.name} game directory not found. "
        "Set the game path with 'set-path --game-dir'."
    )


def find_data_dir(game: Game, override: str | Path | None = None,
                  candidates: list[Path] | None = None) -> Path:
    """Return <game_dir>/<data_subdir>; *override* names the game dir."""
    game_dir = find_game_dir(game, override, candidates)
    data_dir = game_dir / game.data_subdir
    if data_dir.is_dir():
        return data_dir
    raise GameNotFoundError(f"{game.name} {game.data_subdir} directory not found in {game_dir}")


def find_compat_prefix(game: Game, override: str | Path | None = None,
                       candidates: list[Path] | None = None) -> Path:
    """
    Return the Steam compatibility data directory for the game:
        <steam_root>/steamapps/compatdata/<steam_id>/

    The Proton prefix itself is the pfx/ child; Game.custom_ini_path()
    accepts either.
    """
    custom = _check_override(override, "compatdata directory")
    if custom is not None:
        return custom

    for root in find_steam_roots(candidates):
        compat = root / "steamapps" / "compatdata" / game.steam_id
        if compat.is_dir():
            return compat

    raise GameNotFoundError(
        f"compatdata directory not found for {game.name}. "
        "Set it with 'set-path --compatdata'."
    )
