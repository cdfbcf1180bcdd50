"""
config_paths.py
Central helpers for resolving user-writable config and data directories.

Follows the XDG Base Directory Specification:
  Config lives in $XDG_CONFIG_HOME/FusionModManager  (default: ~/.config/FusionModManager)

Layout:
  config.json                      app config (API key, current game, path overrides)
  games/<game_id>/mods.json        mod registry for one game
  games/<game_id>/mods.json.lock   advisory lock around registry read-modify-write
"""

import os
from pathlib import Path

APP_NAME = "FusionModManager"


def get_config_dir() -> Path:
    """Return the app config directory, creating it if it doesn't exist.

    Respects $XDG_CONFIG_HOME; falls back to ~/.config/FusionModManager.
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg) if xdg else Path.home() / ".config"
    config_dir = base / APP_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_app_config_path() -> Path:
    """Return the path to config.json.

    Result: ~/.config/FusionModManager/config.json
    """
    return get_config_dir() / "config.json"


def get_registry_path(game_id: str) -> Path:
    """Return the mods.json registry path for a given game.

    Result: ~/.config/FusionModManager/games/<game_id>/mods.json
    The parent directory is not created here; save_mods() does that so
    that a failure surfaces as a storage error at write time.
    """
    return get_config_dir() / "games" / game_id / "mods.json"


def get_mods_root() -> Path:
    """Return the root directory holding installed mod payloads.

    $FUSION_MODS_DIR overrides the default ~/Games/FusionModManager/Mods.
    """
    env = os.environ.get("FUSION_MODS_DIR")
    if env:
        return Path(env)
    return Path.home() / "Games" / APP_NAME / "Mods"


def get_socket_path() -> Path:
    """Return the Unix socket used for single-instance IPC."""
    runtime = os.environ.get("XDG_RUNTIME_DIR", "/tmp")
    return Path(runtime) / "fusion-mod-manager.sock"
