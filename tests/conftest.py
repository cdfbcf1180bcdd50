"""
Shared fixtures and helpers for the Fusion Mod Manager test suite.

Every test runs against a throwaway game layout under tmp_path:

  tmp/game/Fallout76/Data/               data dir (holds one vanilla archive)
  tmp/compatdata/1151340/pfx/.../Fallout76Custom.ini
  tmp/mods/                              installed mod payloads
  tmp/registry/mods.json
"""

import zipfile
from dataclasses import dataclass
from pathlib import Path

import pytest

from Games.bethesda import FALLOUT_76
from Utils.app_log import set_app_log
from Utils.mod_lifecycle import ModLifecycle

VANILLA_ARCHIVE = "SeventySix - Textures01.ba2"
INITIAL_INI = "[General]\nsStartingConsoleCommand = cl off\n\n[Display]\niPresentInterval = 0\n"


def make_mod_dir(root: Path, name: str, files) -> Path:
    """Create root/name containing *files* (relative paths) and return it."""
    mod = root / name
    mod.mkdir(parents=True, exist_ok=True)
    for rel in files:
        f = mod / rel
        f.parent.mkdir(parents=True, exist_ok=True)
        f.write_bytes(f"payload of {rel}".encode())
    return mod


def make_zip(path: Path, files) -> Path:
    """Write a zip at *path* containing *files* (relative names)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for rel in files:
            zf.writestr(rel, f"payload of {rel}")
    return path


@dataclass
class FakeGame:
    data_dir: Path
    compat_dir: Path
    ini_path: Path
    mods_dir: Path
    registry_path: Path


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, tmp_path_factory, monkeypatch):
    """Point every XDG / env lookup at tmp_path and detach the log sink."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path_factory.mktemp("run")))
    monkeypatch.setenv("FUSION_MODS_DIR", str(tmp_path / "mods-root"))
    monkeypatch.delenv("NEXUS_API_KEY", raising=False)
    set_app_log(None)
    yield
    set_app_log(None)


@pytest.fixture
def fake_game(tmp_path):
    data_dir = tmp_path / "game" / "Fallout76" / "Data"
    data_dir.mkdir(parents=True)
    (data_dir / VANILLA_ARCHIVE).write_bytes(b"vanilla")

    compat_dir = tmp_path / "compatdata" / FALLOUT_76.steam_id
    ini_path = FALLOUT_76.custom_ini_path(compat_dir)
    ini_path.parent.mkdir(parents=True)
    ini_path.write_text(INITIAL_INI)

    mods_dir = tmp_path / "mods"
    mods_dir.mkdir()
    return FakeGame(
        data_dir=data_dir,
        compat_dir=compat_dir,
        ini_path=ini_path,
        mods_dir=mods_dir,
        registry_path=tmp_path / "registry" / "mods.json",
    )


@pytest.fixture
def log_lines():
    lines: list[str] = []
    return lines


@pytest.fixture
def lifecycle(fake_game, log_lines):
    return ModLifecycle(
        game=FALLOUT_76,
        data_dir=fake_game.data_dir,
        ini_path=fake_game.ini_path,
        mods_dir=fake_game.mods_dir,
        registry_path=fake_game.registry_path,
        log_fn=log_lines.append,
    )


def links_in(data_dir: Path) -> dict[str, str]:
    """Return {link name: target} for every symlink directly in *data_dir*."""
    return {p.name: str(p.readlink()) for p in data_dir.iterdir() if p.is_symlink()}
