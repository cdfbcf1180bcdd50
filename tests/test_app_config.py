"""
Tests for config.json, XDG paths and the game catalogue.
"""

import json

import pytest

from Games.base_game import Game
from Games.bethesda import FALLOUT_76, SKYRIM_SE
from Utils.app_config import AppConfig, load_config, save_config
from Utils.config_paths import get_app_config_path, get_mods_root, get_socket_path
from Utils.errors import GameNotFoundError, MalformedDataError
from Utils.game_loader import DEFAULT_GAME_ID, discover_games, get_game, get_game_by_nexus_domain


def test_missing_config_gives_defaults():
    config = load_config()
    assert config == AppConfig()
    assert config.current_game == "fallout76" == DEFAULT_GAME_ID
    assert not get_app_config_path().exists()


def test_save_then_load(tmp_path):
    config = AppConfig(api_key="abc", current_game="skyrimse",
                       game_paths={"skyrimse": "/games/SSE"},
                       compatdata_paths={"skyrimse": "/games/compat"})
    save_config(config)

    path = tmp_path / "xdg-config" / "FusionModManager" / "config.json"
    assert json.loads(path.read_text())["current_game"] == "skyrimse"
    assert load_config() == config
    assert config.game_path_override("skyrimse") == "/games/SSE"
    assert config.compatdata_override("fallout4") == ""


def test_partial_config_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"api_key": "k"}')
    config = load_config(path)
    assert config.api_key == "k"
    assert config.current_game == DEFAULT_GAME_ID
    assert config.game_paths == {}


@pytest.mark.parametrize("content", [
    "not json",
    "[]",
    '{"game_paths": ["x"]}',
    '{"compatdata_paths": {"fallout76": 5}}',
])
def test_malformed_config_raises(tmp_path, content):
    path = tmp_path / "config.json"
    path.write_text(content)
    with pytest.raises(MalformedDataError):
        load_config(path)


def test_env_api_key_wins(monkeypatch):
    config = AppConfig(api_key="stored")
    assert config.effective_api_key() == "stored"
    monkeypatch.setenv("NEXUS_API_KEY", " from-env ")
    assert config.effective_api_key() == "from-env"


def test_paths_follow_environment(tmp_path, monkeypatch):
    assert get_mods_root() == tmp_path / "mods-root"
    assert get_socket_path() == tmp_path / "run" / "fusion-mod-manager.sock"
    monkeypatch.delenv("FUSION_MODS_DIR")
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    assert get_mods_root() == tmp_path / "home" / "Games" / "FusionModManager" / "Mods"


def test_catalogue():
    games = discover_games()
    assert list(games) == ["fallout76", "fallout4", "fallout3", "falloutnv", "skyrim", "skyrimse"]
    assert {g.steam_id for g in games.values()} == {
        "1151340", "377160", "22300", "22380", "72850", "489830"}
    assert get_game("fallout4").archive_ext == ".ba2"
    assert get_game("skyrim").archive_ext == ".bsa"


def test_lookup_errors():
    with pytest.raises(GameNotFoundError):
        get_game("morrowind")
    with pytest.raises(GameNotFoundError):
        get_game_by_nexus_domain("cyberpunk2077")


def test_lookup_by_nexus_domain():
    assert get_game_by_nexus_domain("NewVegas").game_id == "falloutnv"
    assert get_game_by_nexus_domain("skyrimspecialedition") is SKYRIM_SE


def test_custom_ini_path_accepts_compatdata_or_pfx(tmp_path):
    compat = tmp_path / "compatdata" / "1151340"
    expected = compat / "pfx" / "drive_c" / "users" / "steamuser" / "Documents" / \
        "My Games" / "Fallout 76" / "Fallout76Custom.ini"
    assert FALLOUT_76.custom_ini_path(compat) == expected
    assert FALLOUT_76.custom_ini_path(compat / "pfx") == expected


def test_game_is_immutable():
    with pytest.raises(AttributeError):
        FALLOUT_76.name = "Other"  # type: ignore[misc]
    assert isinstance(FALLOUT_76, Game)
