"""
Tests for ModLifecycle: the install / activate / deactivate / update /
uninstall transitions and the consistency of registry, archive list and links.
"""

import shutil

import pytest

import Utils.mod_lifecycle as mod_lifecycle
from conftest import VANILLA_ARCHIVE, links_in, make_mod_dir, make_zip
from Games.bethesda import FALLOUT_76
from Utils.archive_list import read_archive_list
from Utils.errors import (
    ConfigNotFoundError,
    IdentityConflictError,
    ModExistsError,
    ModNotFoundError,
    StorageError,
    SyncError,
)
from Utils.mod_registry import load_mods

KEY = FALLOUT_76.archive_list_key


def archive_list(fake_game):
    return read_archive_list(fake_game.ini_path, KEY)


def registry(fake_game):
    return load_mods("fallout76", fake_game.registry_path)


# ── install ──────────────────────────────────────────────────────────────────

def test_install_registers_inactive_and_touches_nothing_else(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2", "b.ba2"])
    ini_before = fake_game.ini_path.read_text()

    mod = lifecycle.install("Foo", foo)

    assert mod.active is False and mod.is_local
    assert [(m.name, m.active, m.game) for m in registry(fake_game)] == [("Foo", False, "fallout76")]
    assert fake_game.ini_path.read_text() == ini_before
    assert links_in(fake_game.data_dir) == {}


def test_install_duplicate_name_raises(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)
    with pytest.raises(ModExistsError):
        lifecycle.install("Foo", foo)
    assert len(registry(fake_game)) == 1


def test_install_missing_directory_raises(fake_game, lifecycle):
    with pytest.raises(StorageError):
        lifecycle.install("Ghost", fake_game.mods_dir / "Ghost")
    assert registry(fake_game) == []


def test_install_local_copies_single_archive(fake_game, lifecycle, tmp_path):
    src = tmp_path / "downloads" / "Foo.ba2"
    src.parent.mkdir()
    src.write_bytes(b"archive")

    mod = lifecycle.install_local(src)

    assert mod.name == "Foo"
    assert (mod.mod_id, mod.file_id) == ("local", "local")
    assert (fake_game.mods_dir / "Foo" / "Foo.ba2").read_bytes() == b"archive"
    assert src.exists()


def test_install_package_extracts_and_deletes_archive(fake_game, lifecycle, tmp_path):
    package = make_zip(fake_game.mods_dir / "Cool Mod-1234-1-0.zip", ["CoolMod.ba2", "readme.txt"])

    mod = lifecycle.install_package(package, mod_id="1234", file_id="99")

    assert mod.name == "Cool Mod-1234-1-0"
    assert (fake_game.mods_dir / "Cool Mod-1234-1-0" / "CoolMod.ba2").is_file()
    assert not package.exists()
    assert registry(fake_game)[0].file_id == "99"


def test_install_package_failure_leaves_nothing(fake_game, lifecycle):
    package = fake_game.mods_dir / "Broken.zip"
    package.write_bytes(b"this is not a zip file")
    with pytest.raises(StorageError):
        lifecycle.install_package(package)
    assert not (fake_game.mods_dir / "Broken").exists()
    assert registry(fake_game) == []


# ── activate / deactivate ───────────────────────────────────────────────────

def test_activate_lists_and_links_archives(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2", "b.ba2", "readme.txt"])
    lifecycle.install("Foo", foo)

    lifecycle.activate("Foo")

    assert registry(fake_game)[0].active is True
    assert archive_list(fake_game) == ["a.ba2", "b.ba2"]
    assert f"{KEY} = a.ba2, b.ba2" in fake_game.ini_path.read_text()
    assert links_in(fake_game.data_dir) == {
        "a.ba2": str(foo / "a.ba2"),
        "b.ba2": str(foo / "b.ba2"),
    }
    assert "iPresentInterval = 0" in fake_game.ini_path.read_text()


def test_activate_deactivate_round_trip(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2", "b.ba2"])
    lifecycle.install("Foo", foo)

    lifecycle.activate("Foo")
    lifecycle.deactivate("Foo")

    assert registry(fake_game)[0].active is False
    assert archive_list(fake_game) == []
    assert links_in(fake_game.data_dir) == {}
    assert (fake_game.data_dir / VANILLA_ARCHIVE).read_bytes() == b"vanilla"
    assert foo.is_dir()


def test_deactivate_keeps_archive_shared_with_active_mod(fake_game, lifecycle):
    a = make_mod_dir(fake_game.mods_dir, "A", ["shared.ba2"])
    b = make_mod_dir(fake_game.mods_dir, "B", ["shared.ba2", "b.ba2"])
    lifecycle.install("A", a)
    lifecycle.install("B", b)
    lifecycle.activate("A")
    before = archive_list(fake_game)

    lifecycle.activate("B")
    lifecycle.deactivate("B")

    assert archive_list(fake_game) == before == ["shared.ba2"]
    assert links_in(fake_game.data_dir) == {"shared.ba2": str(a / "shared.ba2")}
    assert lifecycle.status().in_sync


def test_activate_twice_is_harmless(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)
    lifecycle.activate("Foo")
    lifecycle.activate("Foo")
    assert archive_list(fake_game) == ["a.ba2"]
    assert list(links_in(fake_game.data_dir)) == ["a.ba2"]


def test_unknown_mod_raises_without_mutation(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)
    before = fake_game.registry_path.read_text()
    for op in (lifecycle.activate, lifecycle.deactivate, lifecycle.uninstall):
        with pytest.raises(ModNotFoundError):
            op("Nope")
    assert fake_game.registry_path.read_text() == before


def test_activate_retry_repairs_failed_sync(fake_game, lifecycle, monkeypatch):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)

    real_sync = mod_lifecycle.sync_links

    def failing_sync(*args, **kwargs):
        raise SyncError("simulated crash", fake_game.data_dir)

    monkeypatch.setattr(mod_lifecycle, "sync_links", failing_sync)
    with pytest.raises(SyncError):
        lifecycle.activate("Foo")
    assert registry(fake_game)[0].active is True
    assert archive_list(fake_game) == ["a.ba2"]
    assert links_in(fake_game.data_dir) == {}

    monkeypatch.setattr(mod_lifecycle, "sync_links", real_sync)
    lifecycle.activate("Foo")
    assert archive_list(fake_game) == ["a.ba2"]
    assert links_in(fake_game.data_dir) == {"a.ba2": str(foo / "a.ba2")}


def test_activate_missing_directory_raises_before_mutation(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)
    shutil.rmtree(foo)
    with pytest.raises(StorageError):
        lifecycle.activate("Foo")
    assert registry(fake_game)[0].active is False


def test_deactivate_with_missing_directory_cleans_up(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2", "b.ba2"])
    keep = make_mod_dir(fake_game.mods_dir, "Keep", ["k.ba2"])
    lifecycle.install("Foo", foo)
    lifecycle.install("Keep", keep)
    lifecycle.activate("Foo")
    lifecycle.activate("Keep")
    shutil.rmtree(foo)

    lifecycle.deactivate("Foo")

    assert archive_list(fake_game) == ["k.ba2"]
    assert links_in(fake_game.data_dir) == {"k.ba2": str(keep / "k.ba2")}


# ── uninstall ────────────────────────────────────────────────────────────────

def test_uninstall_active_mod(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)
    lifecycle.activate("Foo")

    lifecycle.uninstall("Foo")

    assert registry(fake_game) == []
    assert not foo.exists()
    assert archive_list(fake_game) == []
    assert links_in(fake_game.data_dir) == {}


def test_uninstall_deactivates_before_deleting(fake_game, lifecycle, monkeypatch):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)
    lifecycle.activate("Foo")

    def refuse(path, *args, **kwargs):
        # the overlay must already be gone when the directory is removed
        assert links_in(fake_game.data_dir) == {}
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(mod_lifecycle.shutil, "rmtree", refuse)
    with pytest.raises(StorageError):
        lifecycle.uninstall("Foo")

    (entry,) = registry(fake_game)
    assert entry.active is False
    assert foo.is_dir()


def test_uninstall_with_missing_directory(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)
    shutil.rmtree(foo)
    lifecycle.uninstall("Foo")
    assert registry(fake_game) == []



def test_uninstall_retry_after_failed_deactivate(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2"])
    lifecycle.install("Foo", foo)
    lifecycle.activate("Foo")
    ini_text = fake_game.ini_path.read_text()
    fake_game.ini_path.unlink()

    with pytest.raises(ConfigNotFoundError):
        lifecycle.uninstall("Foo")
    assert registry(fake_game)[0].active is False

    # flag already cleared, but the retry must still clean up before deleting
    with pytest.raises(ConfigNotFoundError):
        lifecycle.uninstall("Foo")
    assert foo.is_dir()
    assert links_in(fake_game.data_dir) == {"a.ba2": str(foo / "a.ba2")}

    fake_game.ini_path.write_text(ini_text)
    lifecycle.uninstall("Foo")

    assert registry(fake_game) == []
    assert not foo.exists()
    assert archive_list(fake_game) == []
    assert links_in(fake_game.data_dir) == {}


# ── update ───────────────────────────────────────────────────────────────────

def test_other_file_of_same_mod_is_an_identity_conflict(fake_game, lifecycle):
    bar = make_mod_dir(fake_game.mods_dir, "Bar", ["bar.ba2"])
    lifecycle.install("Bar", bar, mod_id="100", file_id="1")
    bar2 = make_mod_dir(fake_game.mods_dir, "Bar v2", ["bar.ba2"])

    with pytest.raises(IdentityConflictError) as info:
        lifecycle.install("Bar v2", bar2, mod_id="100", file_id="2")
    assert info.value.existing.name == "Bar"
    assert [m.name for m in registry(fake_game)] == ["Bar"]

    with pytest.raises(ModExistsError):
        lifecycle.install("Bar again", bar2, mod_id="100", file_id="1")


def test_update_replaces_old_version(fake_game, lifecycle):
    bar = make_mod_dir(fake_game.mods_dir, "Bar", ["bar-old.ba2"])
    lifecycle.install("Bar", bar, mod_id="100", file_id="1")
    lifecycle.activate("Bar")
    package = make_zip(fake_game.mods_dir / "Bar v2.zip", ["bar-new.ba2"])

    new = lifecycle.update("Bar", package, mod_id="100", file_id="2")

    assert new.name == "Bar v2" and new.active is False
    assert [(m.name, m.file_id) for m in registry(fake_game)] == [("Bar v2", "2")]
    assert not bar.exists()
    assert (fake_game.mods_dir / "Bar v2" / "bar-new.ba2").is_file()
    assert archive_list(fake_game) == []
    assert links_in(fake_game.data_dir) == {}
    assert not package.exists()


# ── load order ───────────────────────────────────────────────────────────────

def test_move_rewrites_list_and_link_winner(fake_game, lifecycle):
    a = make_mod_dir(fake_game.mods_dir, "A", ["a.ba2", "shared.ba2"])
    b = make_mod_dir(fake_game.mods_dir, "B", ["b.ba2", "shared.ba2"])
    c = make_mod_dir(fake_game.mods_dir, "C", ["c.ba2"])
    for name, path in (("A", a), ("B", b), ("C", c)):
        lifecycle.install(name, path)
    lifecycle.activate("A")
    lifecycle.activate("B")
    assert links_in(fake_game.data_dir)["shared.ba2"] == str(b / "shared.ba2")

    lifecycle.move("B", -1)

    assert [m.name for m in registry(fake_game)] == ["B", "A", "C"]
    assert archive_list(fake_game) == ["b.ba2", "shared.ba2", "a.ba2"]
    assert links_in(fake_game.data_dir)["shared.ba2"] == str(a / "shared.ba2")


def test_move_clamps_at_edges(fake_game, lifecycle):
    for name in ("A", "B"):
        lifecycle.install(name, make_mod_dir(fake_game.mods_dir, name, [f"{name}.ba2"]))
    before = fake_game.registry_path.read_text()
    lifecycle.move("A", -1)
    lifecycle.move("B", 5)
    assert fake_game.registry_path.read_text() == before


def test_rebuild_and_status(fake_game, lifecycle):
    foo = make_mod_dir(fake_game.mods_dir, "Foo", ["a.ba2", "b.ba2"])
    bar = make_mod_dir(fake_game.mods_dir, "Bar", ["c.ba2"])
    lifecycle.install("Foo", foo)
    lifecycle.install("Bar", bar)
    lifecycle.activate("Foo")
    assert lifecycle.status().in_sync

    (fake_game.data_dir / "a.ba2").unlink()
    fake_game.ini_path.write_text(f"[Archive]\n{KEY} = b.ba2, c.ba2\n")

    report = lifecycle.status()
    assert report.links.missing == ["a.ba2"]
    assert report.missing_from_list == ["a.ba2"]
    assert report.stale_in_list == ["c.ba2"]
    assert not report.in_sync

    lifecycle.rebuild()

    assert lifecycle.status().in_sync
    assert archive_list(fake_game) == ["a.ba2", "b.ba2"]


def test_from_config_resolves_paths(tmp_path, monkeypatch):
    from Utils.app_config import AppConfig
    from Utils.mod_lifecycle import ModLifecycle

    game_dir = tmp_path / "custom" / "Fallout76"
    (game_dir / "Data").mkdir(parents=True)
    compat = tmp_path / "custom" / "compat"
    compat.mkdir()
    config = AppConfig(game_paths={"fallout76": str(game_dir)},
                       compatdata_paths={"fallout76": str(compat)})

    lc = ModLifecycle.from_config(config)

    assert lc.data_dir == game_dir / "Data"
    assert lc.ini_path == compat / "pfx" / "drive_c" / "users" / "steamuser" / "Documents" / \
        "My Games" / "Fallout 76" / "Fallout76Custom.ini"
    assert lc.mods_dir == tmp_path / "mods-root" / "Fallout 76"
