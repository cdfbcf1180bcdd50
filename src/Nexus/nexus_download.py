"""
nexus_download.py
Download mod packages from the Nexus Mods CDN.

  1. Resolve CDN links via the API from a parsed nxm:// link
  2. Stream-download with progress callbacks, trying each mirror in turn
  3. Save into the given directory without clobbering existing files

Usage
-----
    from Nexus.nexus_api import NexusAPI
    from Nexus.nexus_download import NexusDownloader
    from Nexus.nxm_handler import NxmLink

    dl   = NexusDownloader(NexusAPI(api_key="..."))
    link = NxmLink.parse("nxm://fallout76/mods/1234/files/5678?key=abc&expires=999")
    path = dl.download_from_nxm(link, dest_dir, progress_cb=lambda cur, total: ...)
"""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Callable
from urllib.parse import unquote, urlparse

import requests

from .nexus_api import NexusAPI, NexusAPIError
from .nxm_handler import NxmLink
from Utils.app_log import app_log

# Default chunk size for streaming downloads (256 KB)
_CHUNK_SIZE = 256 * 1024
_TIMEOUT = 60

# Callback signature: (bytes_downloaded, total_bytes_or_zero)
ProgressCallback = Callable[[int, int], None]


class DownloadError(Exception):
    """A download could not be completed."""


class DownloadCancelled(DownloadError):
    """Raised when a download is cancelled via the cancel event."""


def _filename_from_response(resp: requests.Response, url: str) -> str:
    cd = resp.headers.get("Content-Disposition", "")
    m = re.search(r"filename\*?=(?:UTF-8'')?\"?([^\";]+)\"?", cd, re.IGNORECASE)
    if m:
        return Path(unquote(m.group(1).strip())).name
    return Path(unquote(urlparse(url).path)).name


def _unique_path(dest_dir: Path, file_name: str) -> Path:
    """dest_dir/file_name, or "name (1).ext", "name (2).ext", ... if taken."""
    dest = dest_dir / file_name
    stem, suffix = dest.stem, dest.suffix
    counter = 1
    while dest.exists():
        dest = dest_dir / f"{stem} ({counter}){suffix}"
        counter += 1
    return dest


def download_url(
    url: str,
    dest_dir: Path,
    progress_cb: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
    file_name: str = "",
) -> Path:
    """
    Stream *url* into *dest_dir* and return the path written.

    The file name is *file_name* if given, else taken from the
    Content-Disposition header, else from the URL path.  An existing file of
    the same name is never overwritten.  A failed or cancelled download
    leaves no partial file behind.
    """
    dest_dir = Path(dest_dir)
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise DownloadError(f"failed to create {dest_dir}: {exc}") from exc

    dest: Path | None = None
    try:
        with requests.get(url, stream=True, timeout=_TIMEOUT) as resp:
            resp.raise_for_status()
            name = Path(file_name).name if file_name else _filename_from_response(resp, url)
            if not name:
                raise DownloadError(f"cannot determine a file name for {url}")
            total = int(resp.headers.get("Content-Length", 0) or 0)
            dest = _unique_path(dest_dir, name)

            downloaded = 0
            with open(dest, "wb") as fh:
                for chunk in resp.iter_content(_CHUNK_SIZE):
                    if cancel is not None and cancel.is_set():
                        raise DownloadCancelled("Download cancelled")
                    fh.write(chunk)
                    downloaded += len(chunk)
                    if progress_cb:
                        progress_cb(downloaded, total)
    except DownloadError:
        if dest is not None:
            dest.unlink(missing_ok=True)
        raise
    except (requests.RequestException, OSError) as exc:
        if dest is not None:
            dest.unlink(missing_ok=True)
        raise DownloadError(f"download failed: {exc}") from exc

    app_log(f"Downloaded {dest.name} ({downloaded} bytes) → {dest}")
    return dest


class NexusDownloader:
    """
    Downloads mod files from Nexus Mods.

    Parameters
    ----------
    api : NexusAPI
        An authenticated API client instance.
    """

    def __init__(self, api: NexusAPI):
        self._api = api

    def download_from_nxm(
        self,
        link: NxmLink,
        dest_dir: Path,
        progress_cb: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> Path:
        """
        Download the file an nxm:// link points at into *dest_dir*.

        Raises NexusAPIError if no link can be resolved and DownloadError if
        every mirror fails.
        """
        links = self._api.get_download_links(
            game_domain=link.game_domain,
            mod_id=link.mod_id,
            file_id=link.file_id,
            key=link.key or None,
            expires=link.expires or None,
        )

        # The CDN URL usually names the file; the file info is the fallback
        file_name = ""
        try:
            file_name = self._api.get_file_info(
                link.game_domain, link.mod_id, link.file_id).file_name
        except NexusAPIError as exc:
            app_log(f"Could not fetch file info for {link.mod_id}/{link.file_id}: {exc}")

        last_error: Exception | None = None
        for mirror in links:
            try:
                return download_url(mirror.URI, dest_dir, progress_cb, cancel,
                                    file_name=file_name)
            except DownloadCancelled:
                raise
            except DownloadError as exc:
                last_error = exc
                app_log(f"Mirror {mirror.name} failed: {exc}")
        raise DownloadError(f"All mirrors failed. Last error: {last_error}")
