"""
Play-mode manifest schema.

The manifest is fetched by an external collaborator and handed to the engine
as raw JSON. It lists every play mode the switcher can activate and a handful
of global settings:

{
    "Settings": {
        "BackupUserData": true,
        "CleanupOnModeSwitch": true
    },
    "PlayModes": [
        {
            "Name": "Standard",
            "MultiplayerCompatible": true,
            "OnlineVersion": {"DLC": "1.0.0", "MyDocuments": "1.0.0"}
        },
        {
            "Name": "EUI",
            "MultiplayerCompatible": false,
            "OnlineVersion": {"DLC": "2.0.0", "MyDocuments": "2.0.0"},
            "Files": ["MyDocuments/config.ini"],
            "Folders": ["DLC/UI_bc1"],
            "DLCDownload": "https://example.org/eui_dlc.zip",
            "DocsDownload": "https://example.org/eui_docs.zip"
        }
    ]
}

``Files``/``Folders`` entries carry a ``DLC/`` or ``MyDocuments/`` prefix in
the JSON. They are resolved once, here, into ``ModeEntry`` values with an
explicit location tag so the engine never parses path prefixes itself.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LocationKind = Literal["DLC", "MyDocuments"]

DLC: LocationKind = "DLC"
MY_DOCUMENTS: LocationKind = "MyDocuments"
LOCATION_KINDS: tuple[LocationKind, ...] = (DLC, MY_DOCUMENTS)

_log = logging.getLogger(__name__)


class ModeEntry(BaseModel):
    """A file or folder owned by a mode, relative to one install location."""

    model_config = ConfigDict(frozen=True)

    location: LocationKind
    path: str

    @classmethod
    def from_raw(cls, raw: str) -> ModeEntry:
        normalized = raw.replace("\\", "/").strip().strip("/")
        prefix, sep, rest = normalized.partition("/")
        match = next((kind for kind in LOCATION_KINDS if kind.lower() == prefix.lower()), None)
        if match is None or not sep or not rest:
            raise ValueError(
                f"Entry {raw!r} must start with 'DLC/' or 'MyDocuments/' followed by a path"
            )
        if any(part in ("", ".", "..") for part in rest.split("/")):
            raise ValueError(f"Entry {raw!r} contains an empty or relative path segment")
        return cls(location=match, path=rest)


class OnlineVersion(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    dlc: str = Field(alias="DLC")
    my_documents: str = Field(alias="MyDocuments")

    def for_location(self, kind: LocationKind) -> str:
        return self.dlc if kind == DLC else self.my_documents


class PlayMode(BaseModel):
    """One named mod/DLC configuration.

    ``dlc_download``/``docs_download`` are ``None`` when the mode ships no
    content for that location; its version is still tracked.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(alias="Name", min_length=1)
    multiplayer_compatible: bool = Field(default=False, alias="MultiplayerCompatible")
    online_version: OnlineVersion = Field(alias="OnlineVersion")
    files: tuple[ModeEntry, ...] = Field(default=(), alias="Files")
    folders: tuple[ModeEntry, ...] = Field(default=(), alias="Folders")
    dlc_download: str | None = Field(default=None, alias="DLCDownload")
    docs_download: str | None = Field(default=None, alias="DocsDownload")

    @field_validator("files", "folders", mode="before")
    @classmethod
    def _resolve_entries(cls, v):
        if v is None:
            return ()
        return tuple(ModeEntry.from_raw(item) if isinstance(item, str) else item for item in v)

    @field_validator("dlc_download", "docs_download")
    @classmethod
    def _blank_url_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    def download_url(self, kind: LocationKind) -> str | None:
        return self.dlc_download if kind == DLC else self.docs_download

    def target_version(self, kind: LocationKind) -> str:
        return self.online_version.for_location(kind)

    def entries_for(self, kind: LocationKind) -> list[ModeEntry]:
        return [entry for entry in (*self.files, *self.folders) if entry.location == kind]


class ManifestSettings(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    backup_user_data: bool = Field(default=False, alias="BackupUserData")
    cleanup_on_mode_switch: bool = Field(default=False, alias="CleanupOnModeSwitch")
    download_retries: int = Field(default=3, alias="DownloadRetries", ge=1)
    retry_delay_seconds: float = Field(default=2.0, alias="RetryDelaySeconds", ge=0)


class ModeManifest(BaseModel):
    """Parsed play-mode manifest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    play_modes: tuple[PlayMode, ...] = Field(alias="PlayModes")
    settings: ManifestSettings = Field(default_factory=ManifestSettings, alias="Settings")

    @model_validator(mode="after")
    def _no_duplicate_modes(self) -> ModeManifest:
        seen = set()
        for mode in self.play_modes:
            if mode.name in seen:
                raise ValueError(f"Duplicate play mode name: {mode.name!r}")
            seen.add(mode.name)
        if not self.play_modes:
            _log.warning("Manifest declares no play modes")
        return self

    def find_mode(self, name: str) -> PlayMode | None:
        return next((mode for mode in self.play_modes if mode.name == name), None)

    def other_modes(self, name: str) -> list[PlayMode]:
        return [mode for mode in self.play_modes if mode.name != name]


def parse_manifest(data: bytes | str) -> ModeManifest:
    """Parse raw JSON into a ModeManifest.

    Raises ``pydantic.ValidationError`` if the data is invalid.
    Raises ``json.JSONDecodeError`` if the input is not valid JSON.
    """
    return ModeManifest.model_validate(json.loads(data))


def load_manifest(path: str | Path) -> ModeManifest:
    return parse_manifest(Path(path).read_bytes())
