"""
Path layout for the play-mode switcher.

All paths the engine touches are derived from two roots: the game
installation and the game's folder under the user's documents directory.

    <game_root>/ModCache/<SafeModeName>/<Version>/<DLC|MyDocuments>/<artifact>
    <game_root>/Assets/DLC/                    live DLC content
    <game_root>/version_dlc.json
    <docs_root>/version_mydocuments.json
    <docs_root>/ModeSaves/<SafeModeName>/      backup of Saves
    <docs_root>/ModeUserData/<SafeModeName>/   backup of ModUserData
    <docs_root>/mode_userdata.json             mode that owns the live Saves/ModUserData
    <docs_root>/cache/                         game runtime cache

Artifacts are unpacked into a hidden ``.mode-staging-*`` directory inside the
location root they are merged into; it is removed once the merge finishes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from manifest_schema import DLC, LocationKind

BackupRootKind = Literal["ModeSaves", "ModeUserData"]

MODE_SAVES: BackupRootKind = "ModeSaves"
MODE_USER_DATA: BackupRootKind = "ModeUserData"

CACHE_DIR_NAME = "ModCache"
DLC_VERSION_FILENAME = "version_dlc.json"
DOCS_VERSION_FILENAME = "version_mydocuments.json"
USER_DATA_OWNER_FILENAME = "mode_userdata.json"

_ILLEGAL_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def sanitize_mode_name(name: str) -> str:
    """Replace characters that are illegal in Windows file names with ``_``."""
    return _ILLEGAL_CHARS_RE.sub("_", name)


@dataclass(frozen=True)
class EnginePaths:
    game_root: Path
    docs_root: Path
    dlc_subdir: str = "Assets/DLC"

    @classmethod
    def from_roots(cls, game_root: str | Path, docs_root: str | Path) -> EnginePaths:
        return cls(game_root=Path(game_root), docs_root=Path(docs_root))

    @property
    def cache_root(self) -> Path:
        return self.game_root / CACHE_DIR_NAME

    @property
    def dlc_root(self) -> Path:
        return self.game_root / self.dlc_subdir

    @property
    def saves_root(self) -> Path:
        return self.docs_root / "Saves"

    @property
    def mod_user_data_root(self) -> Path:
        return self.docs_root / "ModUserData"

    @property
    def runtime_cache_root(self) -> Path:
        return self.docs_root / "cache"

    @property
    def user_data_owner_file(self) -> Path:
        return self.docs_root / USER_DATA_OWNER_FILENAME

    @property
    def mode_saves_root(self) -> Path:
        return self.docs_root / MODE_SAVES

    @property
    def mode_user_data_root(self) -> Path:
        return self.docs_root / MODE_USER_DATA

    def location_root(self, kind: LocationKind) -> Path:
        return self.dlc_root if kind == DLC else self.docs_root

    def version_file(self, kind: LocationKind) -> Path:
        if kind == DLC:
            return self.game_root / DLC_VERSION_FILENAME
        return self.docs_root / DOCS_VERSION_FILENAME


def cache_path(paths: EnginePaths, mode: str, version: str, kind: LocationKind) -> Path:
    return paths.cache_root / sanitize_mode_name(mode) / version / kind


def backup_path(paths: EnginePaths, root_kind: BackupRootKind, mode: str) -> Path:
    root = paths.mode_saves_root if root_kind == MODE_SAVES else paths.mode_user_data_root
    return root / sanitize_mode_name(mode)


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path
