"""
nxm_install.py
Turn a clicked ``nxm://`` link into an installed (inactive) mod.

  1. parse the link and check it is for the currently selected game
  2. compare mod/file ids with the registry:
       same file already installed   → nothing to do
       other file of the same mod    → ask confirm_replace(old_mod)
  3. validate the API key and resolve a CDN link
  4. download into the game's mod storage
  5. replace the old version (if confirmed) and extract + register the new
     one as inactive; the downloaded package is deleted afterwards

The download happens before anything is removed, so a failed download leaves
the installed version untouched.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable

from Nexus.nexus_api import NexusAPI, NexusAPIError
from Nexus.nexus_download import NexusDownloader, ProgressCallback
from Nexus.nxm_handler import NxmLink
from Utils.app_config import AppConfig
from Utils.app_log import app_log
from Utils.errors import IdentityConflictError, ModManagerError
from Utils.game_loader import get_game_by_nexus_domain
from Utils.mod_lifecycle import ModLifecycle
from Utils.mod_registry import Mod


class WrongGameError(ModManagerError):
    """The nxm:// link is for a game other than the one currently selected."""


def install_from_nxm(
    url: str,
    config: AppConfig,
    lifecycle: ModLifecycle,
    api: NexusAPI | None = None,
    confirm_replace: Callable[[Mod], bool] | None = None,
    progress_cb: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
) -> Mod:
    """
    Download and install the file an nxm:// link points at.

    Returns the registered Mod (the existing entry when that exact file is
    already installed).  Raises ValueError for a malformed link,
    WrongGameError, IdentityConflictError when a replacement is declined,
    NexusAPIError / DownloadError for network failures, and any
    ModManagerError raised while installing.
    """
    link = NxmLink.parse(url)
    game = get_game_by_nexus_domain(link.game_domain)
    if game.game_id != config.current_game:
        raise WrongGameError(
            f"this link is for {game.name}, but the current game is "
            f"{config.current_game}; run 'fusion-mm use {game.game_id}' first"
        )

    mod_id, file_id = str(link.mod_id), str(link.file_id)
    existing = lifecycle.find_installed_source(mod_id)
    if existing is not None:
        if existing.file_id == file_id:
            app_log(f"{existing.name} is already installed (file {file_id}).")
            return existing
        if confirm_replace is None or not confirm_replace(existing):
            raise IdentityConflictError(existing, file_id)

    if api is None:
        key = config.effective_api_key()
        if not key:
            raise NexusAPIError("No Nexus API key set. Run 'fusion-mm login --apikey <key>' first.")
        api = NexusAPI(key)
    user = api.validate()
    app_log(f"Nexus API key valid for {user.name}"
            f"{' (premium)' if user.is_premium else ''}.")

    package = NexusDownloader(api).download_from_nxm(
        link, lifecycle.mods_dir, progress_cb=progress_cb, cancel=cancel)
    try:
        if existing is not None:
            return lifecycle.update(existing.name, package, mod_id, file_id)
        return lifecycle.install_package(package, mod_id=mod_id, file_id=file_id)
    except Exception:
        Path(package).unlink(missing_ok=True)
        raise
