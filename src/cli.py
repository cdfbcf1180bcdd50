"""
Command-line front end for Fusion Mod Manager.

  fusion-mm games                         list supported games
  fusion-mm use fallout4                  switch the current game
  fusion-mm set-path --game-dir DIR       override auto-detected paths
  fusion-mm install Foo.ba2               import a mod (archive or package)
  fusion-mm activate Foo                  enable a mod
  fusion-mm move Foo up                   change load order
  fusion-mm status                        report drift between stores
  fusion-mm serve                         listen for nxm:// links
  fusion-mm nxm "nxm://fallout76/..."     what the browser runs on click

Every command loads config.json at the start and saves it at the end if it
changed it; nothing is kept in module globals between commands.
"""

from __future__ import annotations

import argparse
import queue
import sys
import threading
import time
from pathlib import Path

from Nexus.nexus_api import NexusAPI, NexusAPIError
from Nexus.nexus_download import DownloadError
from Nexus.nxm_handler import NxmHandler, NxmIPC, NxmLink
from Nexus.nxm_install import install_from_nxm
from Utils.app_config import AppConfig, load_config, save_config
from Utils.app_log import app_log, drain, set_app_log
from Utils.errors import ModManagerError
from Utils.extractor import SUPPORTED_SUFFIXES
from Utils.game_loader import discover_games, get_game
from Utils.mod_lifecycle import ModLifecycle
from Utils.mod_registry import Mod, load_mods
from version import __version__


def _print_log(msg: str) -> None:
    stream = sys.stderr if msg.startswith(("WARN", "Error")) else sys.stdout
    print(msg, file=stream, flush=True)


def _lifecycle(config: AppConfig) -> ModLifecycle:
    return ModLifecycle.from_config(config, log_fn=app_log)


def _progress_logger(label: str):
    """Return a (done, total) callback that logs every 10%."""
    last = [-1]

    def _cb(done: int, total: int) -> None:
        if total <= 0:
            return
        pct = done * 100 // total
        if pct // 10 != last[0]:
            last[0] = pct // 10
            app_log(f"  {label}: {pct}% ({done // 1024} / {total // 1024} KB)")
    return _cb


def _ask_replace(old: Mod) -> bool:
    if not sys.stdin.isatty():
        return False
    reply = input(
        f"{old.name} is installed from a different file ({old.file_id}). "
        "Replace it? [y/N] "
    )
    return reply.strip().lower() in ("y", "yes")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_login(args, config: AppConfig) -> int:
    user = NexusAPI(args.apikey).validate()
    config.api_key = args.apikey.strip()
    save_config(config)
    app_log(f"Logged in as {user.name}{' (premium)' if user.is_premium else ''}.")
    return 0


def cmd_games(args, config: AppConfig) -> int:
    for game_id, game in discover_games().items():
        marker = "*" if game_id == config.current_game else " "
        print(f"{marker} {game_id:<12} {game.name}")
    return 0


def cmd_use(args, config: AppConfig) -> int:
    game = get_game(args.game_id)
    config.current_game = game.game_id
    save_config(config)
    app_log(f"Current game: {game.name}")
    return 0


def cmd_set_path(args, config: AppConfig) -> int:
    game_id = get_game(args.game or config.current_game).game_id
    if args.game_dir is None and args.compatdata is None:
        print(f"game dir:   {config.game_path_override(game_id) or '(auto)'}")
        print(f"compatdata: {config.compatdata_override(game_id) or '(auto)'}")
        return 0
    for value, mapping in ((args.game_dir, config.game_paths),
                           (args.compatdata, config.compatdata_paths)):
        if value is None:
            continue
        if value:
            mapping[game_id] = str(Path(value).expanduser().absolute())
        else:
            mapping.pop(game_id, None)
    save_config(config)
    app_log(f"Saved path overrides for {game_id}.")
    return 0


def cmd_list(args, config: AppConfig) -> int:
    mods = load_mods(config.current_game)
    if not mods:
        print("No mods installed.")
        return 0
    for i, m in enumerate(mods, 1):
        state = "active  " if m.active else "inactive"
        source = "local" if m.is_local else f"nexus {m.mod_id}/{m.file_id}"
        print(f"{i:>3}. [{state}] {m.name}  ({source})")
    return 0


def cmd_install(args, config: AppConfig) -> int:
    lc = _lifecycle(config)
    path = Path(args.path).expanduser()
    if path.is_dir():
        lc.install(args.name or path.name, path, mod_id=args.mod_id, file_id=args.file_id)
    elif path.suffix.lower() == lc.game.archive_ext:
        lc.install_local(path)
    elif path.name.lower().endswith(SUPPORTED_SUFFIXES):
        lc.install_package(path, mod_id=args.mod_id, file_id=args.file_id, keep_package=True)
    else:
        raise ModManagerError(
            f"don't know how to install {path.name}: expected a directory, a "
            f"{lc.game.archive_ext} file or one of {', '.join(SUPPORTED_SUFFIXES)}"
        )
    return 0


def cmd_activate(args, config: AppConfig) -> int:
    _lifecycle(config).activate(args.name)
    return 0


def cmd_deactivate(args, config: AppConfig) -> int:
    _lifecycle(config).deactivate(args.name)
    return 0


def cmd_uninstall(args, config: AppConfig) -> int:
    _lifecycle(config).uninstall(args.name)
    return 0


def cmd_move(args, config: AppConfig) -> int:
    offset = -args.steps if args.direction == "up" else args.steps
    _lifecycle(config).move(args.name, offset)
    return 0


def cmd_sync(args, config: AppConfig) -> int:
    lc = _lifecycle(config)
    if args.rebuild:
        lc.rebuild()
    else:
        lc.sync()
    return 0


def cmd_status(args, config: AppConfig) -> int:
    report = _lifecycle(config).status()
    if report.in_sync:
        print("Registry, archive list and links are in sync.")
        return 0
    for label, names in (
        ("missing link", report.links.missing),
        ("orphaned link", report.links.orphaned),
        ("wrong link target", report.links.wrong_target),
        ("not in archive list", report.missing_from_list),
        ("stale in archive list", report.stale_in_list),
    ):
        for name in names:
            print(f"{label}: {name}")
    print("Run 'fusion-mm sync --rebuild' to repair.")
    return 2


def _install_url(url: str, config: AppConfig, confirm) -> None:
    install_from_nxm(
        url, config, _lifecycle(config),
        confirm_replace=confirm,
        progress_cb=_progress_logger("Downloading"),
    )


def cmd_nxm(args, config: AppConfig) -> int:
    NxmLink.parse(args.url)
    if NxmIPC().send_to_running(args.url):
        print("Handed the link to the running instance.")
        return 0
    confirm = (lambda _old: True) if args.yes else _ask_replace
    _install_url(args.url, config, confirm)
    return 0


def _run_jobs(jobs: queue.Queue, confirm) -> None:
    """Install queued nxm links one at a time until a None arrives."""
    while True:
        url = jobs.get()
        if url is None:
            return
        try:
            # fresh config per job; `use` may have switched games meanwhile
            _install_url(url, load_config(), confirm)
        except (ModManagerError, NexusAPIError, DownloadError, ValueError) as exc:
            app_log(f"Error: {exc}")
        except Exception as exc:
            app_log(f"Error: unexpected failure while installing an nxm link: {exc!r}")


class _MainLoop:
    """Just enough of an event loop to give app_log an after_fn."""

    def __init__(self):
        self._pending: queue.Queue = queue.Queue()

    def after(self, delay_ms: int, callback) -> None:
        self._pending.put((time.monotonic() + delay_ms / 1000, callback))

    def run(self) -> None:
        """Run callbacks as they fall due until interrupted."""
        while True:
            try:
                due, callback = self._pending.get(timeout=0.1)
            except queue.Empty:
                continue
            wait = due - time.monotonic()
            if wait > 0:
                time.sleep(wait)
            callback()


def cmd_serve(args, config: AppConfig) -> int:
    """Listen for nxm:// links and install them one at a time."""
    jobs: queue.Queue[str | None] = queue.Queue()
    confirm = (lambda _old: True) if args.yes else None

    loop = _MainLoop()
    set_app_log(_print_log, loop.after)
    worker = threading.Thread(target=_run_jobs, args=(jobs, confirm),
                              daemon=True, name="lifecycle-worker")
    worker.start()
    ipc = NxmIPC()
    ipc.start_server(jobs.put)
    app_log(f"Fusion Mod Manager {__version__} waiting for nxm:// links (Ctrl+C to stop).")
    try:
        loop.run()
    except KeyboardInterrupt:
        app_log("Shutting down ...")
    finally:
        ipc.shutdown()
        jobs.put(None)
        worker.join()
        drain()
        set_app_log(_print_log)
    return 0


def cmd_register_handler(args, config: AppConfig) -> int:
    if NxmHandler.register():
        return 0
    app_log("WARN: the .desktop file was written but could not be made the default handler.")
    return 1


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="fusion-mm",
        description="Mod manager for Bethesda games running under Proton.",
    )
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="store and validate a Nexus API key")
    p.add_argument("--apikey", required=True)
    p.set_defaults(func=cmd_login)

    sub.add_parser("games", help="list supported games").set_defaults(func=cmd_games)

    p = sub.add_parser("use", help="select the current game")
    p.add_argument("game_id")
    p.set_defaults(func=cmd_use)

    p = sub.add_parser("set-path", help="override detected game / prefix paths ('' clears)")
    p.add_argument("--game", help="game id (default: current game)")
    p.add_argument("--game-dir")
    p.add_argument("--compatdata")
    p.set_defaults(func=cmd_set_path)

    sub.add_parser("list", help="list installed mods in load order").set_defaults(func=cmd_list)

    p = sub.add_parser("install", help="install an archive file, package or directory")
    p.add_argument("path")
    p.add_argument("--name", help="mod name when installing a directory")
    p.add_argument("--mod-id", default="local")
    p.add_argument("--file-id", default="local")
    p.set_defaults(func=cmd_install)

    for name, func, help_text in (
        ("activate", cmd_activate, "enable an installed mod"),
        ("deactivate", cmd_deactivate, "disable a mod without removing it"),
        ("uninstall", cmd_uninstall, "remove a mod and its files"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("name")
        p.set_defaults(func=func)

    p = sub.add_parser("move", help="change a mod's place in load order")
    p.add_argument("name")
    p.add_argument("direction", choices=("up", "down"))
    p.add_argument("--steps", type=int, default=1)
    p.set_defaults(func=cmd_move)

    p = sub.add_parser("sync", help="rebuild the links in Data/")
    p.add_argument("--rebuild", action="store_true",
                   help="also rewrite the archive list from the registry")
    p.set_defaults(func=cmd_sync)

    sub.add_parser("status", help="check links and archive list").set_defaults(func=cmd_status)

    p = sub.add_parser("nxm", help="handle an nxm:// link")
    p.add_argument("url")
    p.add_argument("--yes", "-y", action="store_true", help="replace other versions without asking")
    p.set_defaults(func=cmd_nxm)

    p = sub.add_parser("serve", help="listen for nxm:// links from the browser")
    p.add_argument("--yes", "-y", action="store_true", help="replace other versions without asking")
    p.set_defaults(func=cmd_serve)

    sub.add_parser("register-handler", help="register as the nxm:// handler") \
        .set_defaults(func=cmd_register_handler)
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    set_app_log(_print_log)
    try:
        config = load_config()
        return args.func(args, config)
    except (ModManagerError, NexusAPIError, DownloadError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
