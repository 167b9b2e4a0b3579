"""
Keep each mode's saves and mod user data apart.

When a mode is deactivated its live ``Saves`` and ``ModUserData`` trees are
moved into ``ModeSaves/<mode>`` and ``ModeUserData/<mode>``. When a mode is
activated its backup is copied back, and the backup is kept so the next
switch away and back again loses nothing.

Files are handled one at a time. A file that cannot be moved or copied is
logged and skipped; the rest of the tree is still processed.
"""

from __future__ import annotations

import json
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from mode_paths import MODE_SAVES, MODE_USER_DATA, BackupRootKind, EnginePaths, backup_path

_log = logging.getLogger(__name__)


@dataclass
class MigrationReport:
    moved: int = 0
    copied: int = 0
    failures: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _iter_files(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file())


def _has_files(root: Path) -> bool:
    return root.is_dir() and any(p.is_file() for p in root.rglob("*"))


def _prune_empty_dirs(root: Path):
    for directory in sorted((p for p in root.rglob("*") if p.is_dir()), reverse=True):
        try:
            if not any(directory.iterdir()):
                directory.rmdir()
        except OSError as exc:
            _log.warning("Could not remove empty directory %s: %s", directory, exc)


class UserDataMigrator:
    def __init__(self, paths: EnginePaths, log_callback: Callable[[str], None] | None = None):
        self.paths = paths
        self._log_cb = log_callback or _log.info

    def log(self, msg: str):
        self._log_cb(msg)

    def _trees(
        self, live_save_path: Path | None, live_user_data_path: Path | None
    ) -> list[tuple[Path, BackupRootKind]]:
        return [
            (live_save_path or self.paths.saves_root, MODE_SAVES),
            (live_user_data_path or self.paths.mod_user_data_root, MODE_USER_DATA),
        ]

    def deactivate(
        self,
        mode: str,
        live_save_path: Path | None = None,
        live_user_data_path: Path | None = None,
        report: MigrationReport | None = None,
    ) -> MigrationReport:
        report = report or MigrationReport()
        for live, root_kind in self._trees(live_save_path, live_user_data_path):
            if not _has_files(live):
                continue
            backup = backup_path(self.paths, root_kind, mode)
            self.log(f"Backing up {live.name} for '{mode}'...")
            for src in _iter_files(live):
                rel = src.relative_to(live)
                dst = backup / rel
                try:
                    dst.parent.mkdir(parents=True, exist_ok=True)
                    if dst.exists():
                        dst.unlink()
                    shutil.move(str(src), str(dst))
                    report.moved += 1
                except OSError as exc:
                    _log.warning("Could not back up %s: %s", src, exc)
                    report.failures.append(f"{live.name}/{rel.as_posix()}: {exc}")
            _prune_empty_dirs(live)
        return report

    def activate(
        self,
        mode: str,
        live_save_path: Path | None = None,
        live_user_data_path: Path | None = None,
        report: MigrationReport | None = None,
    ) -> MigrationReport:
        report = report or MigrationReport()
        for live, root_kind in self._trees(live_save_path, live_user_data_path):
            backup = backup_path(self.paths, root_kind, mode)
            if not backup.is_dir():
                continue
            self.log(f"Restoring {live.name} for '{mode}'...")
            for src in _iter_files(backup):
                rel = src.relative_to(backup)
                dst = live / rel
                try:
                    dst.parent.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(src, dst)
                    report.copied += 1
                except OSError as exc:
                    _log.warning("Could not restore %s: %s", src, exc)
                    report.failures.append(f"{live.name}/{rel.as_posix()}: {exc}")
        return report

    # ── Owner of the live trees ───────────────────────────────────────

    def owner(self) -> str | None:
        """Mode whose data currently sits in the live trees, if recorded."""
        path = self.paths.user_data_owner_file
        if not path.exists():
            return None
        try:
            mode = json.loads(path.read_text(encoding="utf-8"))["Mode"]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            _log.warning("Ignoring unreadable user data owner %s: %s", path, exc)
            return None
        return mode if isinstance(mode, str) and mode else None

    def set_owner(self, mode: str) -> bool:
        path = self.paths.user_data_owner_file
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps({"Mode": mode}, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            _log.warning("Could not record user data owner %s: %s", path, exc)
            return False
        return True

    def switch(
        self,
        current_mode: str,
        previous_mode: str | None,
        live_save_path: Path | None = None,
        live_user_data_path: Path | None = None,
    ) -> MigrationReport:
        """Move ``previous_mode``'s data out and ``current_mode``'s data in.

        The new owner is recorded as soon as the live trees hold its data, so
        a later retry never backs those files up under the previous mode.
        """
        report = MigrationReport()
        if not previous_mode or previous_mode == current_mode:
            return report
        self.log(f"Migrating user data: '{previous_mode}' -> '{current_mode}'")
        self.deactivate(previous_mode, live_save_path, live_user_data_path, report)
        self.activate(current_mode, live_save_path, live_user_data_path, report)
        if not self.set_owner(current_mode):
            report.failures.append(f"{self.paths.user_data_owner_file.name}: not written")
        self.log(
            f"  Moved {report.moved} file(s) out, restored {report.copied} file(s)"
            + (f", {len(report.failures)} failure(s)" if report.failures else "")
        )
        return report
