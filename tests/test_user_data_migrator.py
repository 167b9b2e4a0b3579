import logging
import shutil
from pathlib import Path

from mode_paths import MODE_SAVES, MODE_USER_DATA, backup_path
from user_data_migrator import UserDataMigrator
from tests.conftest import read_tree, write_tree


def make_migrator(paths):
    return UserDataMigrator(paths, log_callback=lambda _: None)


def test_deactivate_moves_files_into_backup(paths):
    write_tree(paths.saves_root, {"single/auto.sav": "a", "quick.sav": "q"})
    write_tree(paths.mod_user_data_root, {"eui.db": "db"})

    report = make_migrator(paths).deactivate("EUI")

    assert report.moved == 3 and report.ok
    assert read_tree(paths.saves_root) == {}
    assert read_tree(paths.mod_user_data_root) == {}
    assert paths.saves_root.is_dir()
    assert read_tree(backup_path(paths, MODE_SAVES, "EUI")) == {
        "quick.sav": b"q",
        "single/auto.sav": b"a",
    }
    assert read_tree(backup_path(paths, MODE_USER_DATA, "EUI")) == {"eui.db": b"db"}


def test_deactivate_empty_tree_creates_no_backup(paths):
    (paths.saves_root / "empty_subdir").mkdir(parents=True)

    report = make_migrator(paths).deactivate("Standard")

    assert report.moved == 0
    assert not backup_path(paths, MODE_SAVES, "Standard").exists()
    assert not backup_path(paths, MODE_USER_DATA, "Standard").exists()


def test_activate_copies_and_keeps_backup(paths):
    write_tree(backup_path(paths, MODE_SAVES, "EUI"), {"quick.sav": "q"})

    report = make_migrator(paths).activate("EUI")

    assert report.copied == 1
    assert read_tree(paths.saves_root) == {"quick.sav": b"q"}
    assert read_tree(backup_path(paths, MODE_SAVES, "EUI")) == {"quick.sav": b"q"}


def test_activate_without_backup_is_noop(paths):
    report = make_migrator(paths).activate("Never Used")
    assert report.copied == 0
    assert not paths.saves_root.exists()


def test_round_trip_restores_saves(paths):
    original = {"auto/AutoSave_0001.Civ5Save": "turn 1", "Quick.Civ5Save": "quick"}
    write_tree(paths.saves_root, original)
    migrator = make_migrator(paths)

    migrator.deactivate("A")
    migrator.activate("B")
    write_tree(paths.saves_root, {"b_only.Civ5Save": "from B"})
    migrator.deactivate("B")
    migrator.activate("A")

    assert read_tree(paths.saves_root) == {k: v.encode() for k, v in original.items()}
    assert read_tree(backup_path(paths, MODE_SAVES, "B")) == {"b_only.Civ5Save": b"from B"}


def test_switch_requires_a_change_of_mode(paths):
    write_tree(paths.saves_root, {"x.sav": "x"})
    migrator = make_migrator(paths)

    assert migrator.switch("EUI", None).moved == 0
    assert migrator.switch("EUI", "EUI").moved == 0
    assert read_tree(paths.saves_root) == {"x.sav": b"x"}

    report = migrator.switch("EUI", "Standard")
    assert report.moved == 1
    assert read_tree(paths.saves_root) == {}
    assert read_tree(backup_path(paths, MODE_SAVES, "Standard")) == {"x.sav": b"x"}


def test_failed_move_is_logged_and_skipped(paths, monkeypatch):
    write_tree(paths.saves_root, {"a.sav": "a", "b.sav": "b"})
    real_move = shutil.move

    def flaky_move(src, dst):
        if src.endswith("a.sav"):
            raise PermissionError("in use")
        return real_move(src, dst)

    monkeypatch.setattr("user_data_migrator.shutil.move", flaky_move)

    report = make_migrator(paths).deactivate("EUI")

    assert report.moved == 1
    assert len(report.failures) == 1
    assert read_tree(paths.saves_root) == {"a.sav": b"a"}
    assert read_tree(backup_path(paths, MODE_SAVES, "EUI")) == {"b.sav": b"b"}


def test_undeletable_empty_dir_is_logged(paths, monkeypatch, caplog):
    write_tree(paths.saves_root, {"single/auto.sav": "a"})

    def locked_rmdir(self):
        raise PermissionError("in use")

    monkeypatch.setattr(Path, "rmdir", locked_rmdir)

    with caplog.at_level(logging.WARNING, logger="user_data_migrator"):
        report = make_migrator(paths).deactivate("EUI")

    assert report.moved == 1 and report.ok
    assert (paths.saves_root / "single").is_dir()
    assert "Could not remove empty directory" in caplog.text


def test_switch_records_new_owner(paths):
    migrator = make_migrator(paths)
    assert migrator.owner() is None

    migrator.switch("EUI", "Standard")

    assert migrator.owner() == "EUI"
    assert UserDataMigrator(paths).owner() == "EUI"


def test_unreadable_owner_is_ignored(paths):
    paths.user_data_owner_file.write_text("{not json", encoding="utf-8")
    assert make_migrator(paths).owner() is None
