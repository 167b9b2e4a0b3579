"""
Per-location install state.

One JSON record per location records which mode and version is installed
there. Records are always rewritten whole.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable

from manifest_schema import DLC, LOCATION_KINDS, MY_DOCUMENTS, LocationKind
from mode_paths import EnginePaths, ensure_dir

_log = logging.getLogger(__name__)

LAST_RUN_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class VersionRecord:
    Mode: str
    Version: str
    LastRun: str
    Location: LocationKind

    @classmethod
    def from_dict(cls, data: dict) -> VersionRecord:
        location = data["Location"]
        if location not in LOCATION_KINDS:
            raise ValueError(f"Unknown location {location!r}")
        mode, version, last_run = data["Mode"], data["Version"], data.get("LastRun", "")
        if not isinstance(mode, str) or not isinstance(version, str):
            raise ValueError("Mode and Version must be strings")
        return cls(Mode=mode, Version=version, LastRun=str(last_run), Location=location)


class InstallStateTracker:
    def __init__(self, paths: EnginePaths, clock: Callable[[], datetime] = datetime.now):
        self.paths = paths
        self._clock = clock

    def read(self, kind: LocationKind) -> VersionRecord | None:
        path = self.paths.version_file(kind)
        if not path.exists():
            return None
        try:
            record = VersionRecord.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            _log.warning("Ignoring unreadable version record %s: %s", path, exc)
            return None
        if record.Location != kind:
            _log.warning(
                "Version record %s is tagged %s, expected %s; ignoring", path, record.Location, kind
            )
            return None
        return record

    def write(self, mode: str, version: str, kind: LocationKind) -> VersionRecord:
        record = VersionRecord(
            Mode=mode,
            Version=version,
            LastRun=self._clock().strftime(LAST_RUN_FORMAT),
            Location=kind,
        )
        path = self.paths.version_file(kind)
        ensure_dir(path.parent)
        path.write_text(json.dumps(asdict(record), indent=2, ensure_ascii=False), encoding="utf-8")
        _log.info("Recorded %s install: %s %s", kind, mode, version)
        return record

    def last_used_mode(self) -> str | None:
        for kind in (MY_DOCUMENTS, DLC):
            record = self.read(kind)
            if record is not None:
                return record.Mode
        return None
