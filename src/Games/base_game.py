"""
base_game.py
Description of a game the manager can mod.

Every supported title is a frozen ``Game`` record declared in Games/bethesda.py
and looked up through Utils/game_loader.py.  A Game knows nothing about the
user's machine; directory discovery is Utils/game_locator.py's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Path of the user's Documents folder inside a Proton prefix.
_DOCUMENTS_SUBPATH = Path("drive_c/users/steamuser/Documents/My Games")


@dataclass(frozen=True)
class Game:
    """Static description of one supported game.

    Attributes:
        game_id:          Filesystem-safe identifier, e.g. ``"fallout76"``.
                          Used as the registry folder name and in config.json.
        name:             Human-readable name, e.g. ``"Fallout 76"``.
        steam_id:         Steam App ID; names the compatdata/<id> prefix.
        nexus_domain:     Nexus Mods game domain used in nxm:// links.
        install_folder:   Folder name under steamapps/common/.
        exe_name:         Executable used to confirm an install folder.
        config_file:      INI inside My Games/ that holds the archive list.
        my_games_folder:  Folder name under Documents/My Games/.
        archive_list_key: Key in the [Archive] section listing extra archives.
        archive_ext:      Extension of the game's resource archives.
        data_subdir:      Folder inside the install root the engine loads from.
    """
    game_id: str
    name: str
    steam_id: str
    nexus_domain: str
    install_folder: str
    exe_name: str
    config_file: str
    my_games_folder: str
    archive_list_key: str
    archive_ext: str
    data_subdir: str = "Data"

    def custom_ini_path(self, compat_dir: Path) -> Path:
        """Return the game INI inside a compatibility prefix.

        *compat_dir* may be either steamapps/compatdata/<id> or its pfx/
        child; both are accepted so a user override can point at either.
        """
        pfx = compat_dir if compat_dir.name == "pfx" else compat_dir / "pfx"
        return pfx / _DOCUMENTS_SUBPATH / self.my_games_folder / self.config_file

    def mods_dir(self, mods_root: Path) -> Path:
        """Return the folder holding this game's installed mod payloads."""
        return mods_root / self.name
