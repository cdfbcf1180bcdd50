"""
bethesda.py
Catalogue of supported Bethesda titles.

All of them load extra resource archives listed in an [Archive] key of an INI
in My Games/, and all of them are Steam titles run through Proton, so they
differ only in data.
"""

from Games.base_game import Game

FALLOUT_76 = Game(
    game_id="fallout76",
    name="Fallout 76",
    steam_id="1151340",
    nexus_domain="fallout76",
    install_folder="Fallout76",
    exe_name="Fallout76.exe",
    config_file="Fallout76Custom.ini",
    my_games_folder="Fallout 76",
    archive_list_key="sResourceArchive2List",
    archive_ext=".ba2",
)

FALLOUT_4 = Game(
    game_id="fallout4",
    name="Fallout 4",
    steam_id="377160",
    nexus_domain="fallout4",
    install_folder="Fallout 4",
    exe_name="Fallout4Launcher.exe",
    config_file="Fallout4Custom.ini",
    my_games_folder="Fallout4",
    archive_list_key="sResourceArchiveList2",
    archive_ext=".ba2",
)

FALLOUT_3 = Game(
    game_id="fallout3",
    name="Fallout 3",
    steam_id="22300",
    nexus_domain="fallout3",
    install_folder="Fallout 3 goty",
    exe_name="Fallout3Launcher.exe",
    config_file="Fallout.ini",
    my_games_folder="Fallout3",
    archive_list_key="SArchiveList",
    archive_ext=".bsa",
)

FALLOUT_NV = Game(
    game_id="falloutnv",
    name="Fallout: New Vegas",
    steam_id="22380",
    nexus_domain="newvegas",
    install_folder="Fallout New Vegas",
    exe_name="FalloutNVLauncher.exe",
    config_file="Fallout.ini",
    my_games_folder="FalloutNV",
    archive_list_key="SArchiveList",
    archive_ext=".bsa",
)

SKYRIM = Game(
    game_id="skyrim",
    name="The Elder Scrolls V: Skyrim",
    steam_id="72850",
    nexus_domain="skyrim",
    install_folder="Skyrim",
    exe_name="SkyrimLauncher.exe",
    config_file="Skyrim.ini",
    my_games_folder="Skyrim",
    archive_list_key="sResourceArchiveList2",
    archive_ext=".bsa",
)

SKYRIM_SE = Game(
    game_id="skyrimse",
    name="The Elder Scrolls V: Skyrim Special Edition",
    steam_id="489830",
    nexus_domain="skyrimspecialedition",
    install_folder="Skyrim Special Edition",
    exe_name="SkyrimSELauncher.exe",
    config_file="Skyrim.ini",
    my_games_folder="Skyrim Special Edition",
    archive_list_key="sResourceArchiveList2",
    archive_ext=".bsa",
)

SUPPORTED_GAMES: tuple[Game, ...] = (
    FALLOUT_76,
    FALLOUT_4,
    FALLOUT_3,
    FALLOUT_NV,
    SKYRIM,
    SKYRIM_SE,
)
