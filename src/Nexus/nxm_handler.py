"""
nxm_handler.py
NXM protocol handler: parses ``nxm://`` links, registers the app as their
handler on Linux via XDG, and forwards links to an already-running instance.

NXM link format
---------------
    nxm://<game_domain>/mods/<mod_id>/files/<file_id>?key=<key>&expires=<expires>

Free users click "Download with Manager" on the Nexus website; the browser
fires an ``nxm://`` URL containing a one-time key + expiry.

Usage
-----
    from Nexus.nxm_handler import NxmHandler, NxmIPC, NxmLink

    link = NxmLink.parse("nxm://fallout76/mods/1234/files/5678?key=abc&expires=999")
    NxmHandler.register()                 # one-time setup

    if not NxmIPC().send_to_running(url): # no instance listening
        ...
"""

from __future__ import annotations

import os
import re
import shutil
import socket
import subprocess
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import parse_qs, urlparse

from Utils.app_log import app_log
from Utils.config_paths import get_socket_path

# XDG .desktop file name used to register the handler
_DESKTOP_FILE_NAME = "fusionmodmanager-nxm.desktop"

# Upper bound on a single IPC payload; an nxm URL is far shorter
_MAX_PAYLOAD = 64 * 1024


@dataclass
class NxmLink:
    """
    Parsed components of an ``nxm://`` URL.

    Attributes
    ----------
    game_domain : str   e.g. "fallout76"
    mod_id      : int
    file_id     : int
    key         : str   one-time download key (empty for premium direct calls)
    expires     : int   Unix timestamp when the key expires (0 if absent)
    raw         : str   the original URL string
    """
    game_domain: str
    mod_id: int
    file_id: int
    key: str = ""
    expires: int = 0
    raw: str = ""

    _PATH_RE = re.compile(
        r"^/mods/(?P<mod_id>\d+)/files/(?P<file_id>\d+)/?$",
        re.IGNORECASE,
    )

    @classmethod
    def parse(cls, url: str) -> NxmLink:
        """
        Parse an ``nxm://`` URL into its components.

        Raises ValueError if the URL is malformed.
        """
        url = url.strip()
        parsed = urlparse(url)

        if parsed.scheme.lower() != "nxm":
            raise ValueError(f"Not an nxm:// URL: {url!r}")

        game_domain = parsed.netloc
        if not game_domain:
            raise ValueError(f"Missing game domain in NXM URL: {url!r}")

        match = cls._PATH_RE.match(parsed.path)
        if not match:
            raise ValueError(
                f"Cannot parse mod/file IDs from NXM URL path: {parsed.path!r}"
            )

        qs = parse_qs(parsed.query)
        key = qs.get("key", [""])[0]
        try:
            expires = int(qs.get("expires", ["0"])[0])
        except ValueError:
            expires = 0

        return cls(
            game_domain=game_domain.lower(),
            mod_id=int(match.group("mod_id")),
            file_id=int(match.group("file_id")),
            key=key,
            expires=expires,
            raw=url,
        )


class NxmHandler:
    """
    Manages ``nxm://`` protocol registration on Linux.

    ``NxmHandler.register()`` writes a .desktop file to
    ``$XDG_DATA_HOME/applications/`` that runs ``<this program> nxm %u`` and
    makes it the default ``x-scheme-handler/nxm`` via ``xdg-mime``.
    """

    @staticmethod
    def _desktop_path() -> Path:
        xdg = os.environ.get("XDG_DATA_HOME")
        base = Path(xdg) if xdg else Path.home() / ".local" / "share"
        return base / "applications" / _DESKTOP_FILE_NAME

    @staticmethod
    def _get_exec_command() -> str:
        installed = shutil.which("fusion-mm")
        if installed:
            return f'"{installed}" nxm %u'
        script = Path(sys.argv[0]).resolve()
        return f'"{sys.executable}" "{script}" nxm %u'

    @classmethod
    def desktop_entry(cls) -> str:
        return (
            "[Desktop Entry]\n"
            "Type=Application\n"
            "Name=Fusion Mod Manager (NXM Handler)\n"
            "Comment=Handle nxm:// download links from Nexus Mods\n"
            f"Exec={cls._get_exec_command()}\n"
            "Terminal=false\n"
            "NoDisplay=true\n"
            "MimeType=x-scheme-handler/nxm;\n"
            "Categories=Game;\n"
        )

    @classmethod
    def register(cls) -> bool:
        """
        Register Fusion Mod Manager as the handler for nxm:// links.

        Returns True on success, False if xdg-mime is unavailable or fails.
        The .desktop file is written either way.
        """
        desktop_path = cls._desktop_path()
        desktop_path.parent.mkdir(parents=True, exist_ok=True)
        desktop_path.write_text(cls.desktop_entry())
        app_log(f"Wrote NXM .desktop file: {desktop_path}")

        if not shutil.which("xdg-mime"):
            app_log("xdg-mime not found, nxm:// handler not registered")
            return False
        try:
            subprocess.run(
                ["xdg-mime", "default", _DESKTOP_FILE_NAME, "x-scheme-handler/nxm"],
                check=True,
                capture_output=True,
            )
        except subprocess.CalledProcessError as exc:
            app_log(f"xdg-mime default failed: {exc.stderr}")
            return False
        app_log("Registered nxm:// protocol handler via xdg-mime")
        return True

    @classmethod
    def is_registered(cls) -> bool:
        return cls._desktop_path().is_file()


class NxmIPC:
    """
    Single-instance channel over a Unix domain socket.

    The running instance calls ``start_server(callback)``; a second process
    launched by the browser calls ``send_to_running(url)``, which writes the
    URL as plain UTF-8 text, closes the connection and returns True.  One
    payload per connection.

    The callback runs on the listener thread; the receiver queues the work
    for its own worker rather than running it there.
    """

    def __init__(self, socket_path: Path | None = None):
        self.socket_path = Path(socket_path) if socket_path else get_socket_path()
        self._server_socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None

    def send_to_running(self, nxm_url: str) -> bool:
        """
        Try to send *nxm_url* to an already-running instance.

        Returns True if delivered, False if no instance was listening.
        """
        if not self.socket_path.exists():
            return False
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.settimeout(2)
                sock.connect(str(self.socket_path))
                sock.sendall(nxm_url.encode("utf-8"))
        except OSError as exc:
            app_log(f"No running instance to hand off to: {exc}")
            # Stale socket left by a crashed instance
            self.socket_path.unlink(missing_ok=True)
            return False
        app_log("Sent NXM link to running instance")
        return True

    @staticmethod
    def _read_payload(conn: socket.socket) -> str:
        chunks: list[bytes] = []
        size = 0
        while size < _MAX_PAYLOAD:
            data = conn.recv(4096)
            if not data:
                break
            chunks.append(data)
            size += len(data)
        return b"".join(chunks).decode("utf-8", errors="replace").strip()

    def start_server(self, callback: Callable[[str], None]) -> None:
        """
        Start listening for payloads from new instances.

        *callback* is called from a background thread with each received
        payload string.
        """
        self.socket_path.parent.mkdir(parents=True, exist_ok=True)
        self.socket_path.unlink(missing_ok=True)

        srv = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        srv.bind(str(self.socket_path))
        srv.listen(4)
        self._server_socket = srv

        def _accept_loop():
            while True:
                try:
                    conn, _ = srv.accept()
                except OSError:
                    break  # socket closed → shutting down
                with conn:
                    try:
                        conn.settimeout(5)
                        url = self._read_payload(conn)
                    except OSError as exc:
                        app_log(f"Error reading IPC message: {exc}")
                        continue
                if url:
                    app_log(f"Received NXM link from new instance: {url}")
                    try:
                        callback(url)
                    except Exception as exc:
                        app_log(f"Error handling IPC message: {exc}")

        t = threading.Thread(target=_accept_loop, daemon=True, name="nxm-ipc")
        t.start()
        self._thread = t
        app_log(f"NXM IPC server listening on {self.socket_path}")

    def shutdown(self) -> None:
        """Close the IPC socket and remove it from disk."""
        if self._server_socket is not None:
            try:
                # shutdown() wakes a thread blocked in accept(); close() alone does not
                self._server_socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                self._server_socket.close()
            except OSError as exc:
                app_log(f"Error closing IPC socket: {exc}")
            self._server_socket = None
        self.socket_path.unlink(missing_ok=True)
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None
