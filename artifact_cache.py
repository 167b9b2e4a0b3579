"""
On-disk cache of downloaded mode artifacts.

Entries live at ``ModCache/<SafeModeName>/<Version>/<DLC|MyDocuments>/`` and
hold a single archive named after the download URL. An entry only exists once
its download fully succeeded; entries are never edited, only deleted whole by
``garbage_collect``.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Iterable
from urllib.parse import unquote, urlparse

import fetcher
from manifest_schema import LOCATION_KINDS, LocationKind, PlayMode
from mode_paths import EnginePaths, cache_path, ensure_dir, sanitize_mode_name

_log = logging.getLogger(__name__)


def artifact_name(url: str) -> str:
    """File name of the artifact a URL points at (query string ignored)."""
    name = Path(unquote(urlparse(url).path)).name
    return name or "artifact"


class ArtifactCache:
    def __init__(
        self,
        paths: EnginePaths,
        max_attempts: int = fetcher.DEFAULT_MAX_ATTEMPTS,
        base_delay: float = fetcher.DEFAULT_BASE_DELAY,
        log_callback: Callable[[str], None] | None = None,
        progress_cb: fetcher.ProgressCallback | None = None,
    ):
        self.paths = paths
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._log_cb = log_callback or _log.info
        self._progress_cb = progress_cb

    def log(self, msg: str):
        self._log_cb(msg)

    def entry_dir(self, mode: str, version: str, kind: LocationKind) -> Path:
        return cache_path(self.paths, mode, version, kind)

    def find_cached(self, url: str, version: str, mode: str, kind: LocationKind) -> Path | None:
        candidate = self.entry_dir(mode, version, kind) / artifact_name(url)
        return candidate if candidate.is_file() else None

    def get_or_fetch(self, url: str, version: str, mode: str, kind: LocationKind) -> Path | None:
        """Return the cached artifact for ``url``, downloading it on a miss.

        Returns None when the download failed; no cache entry is left behind.
        """
        cached = self.find_cached(url, version, mode, kind)
        if cached is not None:
            self.log(f"Using cached {kind} artifact for '{mode}' {version}: {cached.name}")
            return cached

        entry = self.entry_dir(mode, version, kind)
        created = not entry.exists()
        ensure_dir(entry)
        destination = entry / artifact_name(url)
        ok = fetcher.fetch_with_retry(
            url,
            destination,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            progress_cb=self._progress_cb,
            log_callback=self._log_cb,
        )
        if ok:
            return destination

        if created:
            self._remove_empty_entry(entry)
        return None

    def _remove_empty_entry(self, entry: Path):
        stop_at = self.paths.cache_root
        current = entry
        while current.exists() and current != stop_at and current != current.parent:
            if any(current.iterdir()):
                break
            current.rmdir()
            current = current.parent

    def garbage_collect(self, current_modes: Iterable[PlayMode]) -> list[Path]:
        """Delete cache directories for retired modes and superseded versions.

        Returns the directories that were removed.
        """
        root = self.paths.cache_root
        if not root.is_dir():
            return []

        wanted: dict[str, set[str]] = {}
        for mode in current_modes:
            versions = wanted.setdefault(sanitize_mode_name(mode.name), set())
            versions.update(mode.target_version(kind) for kind in LOCATION_KINDS)

        removed: list[Path] = []
        for mode_dir in sorted(root.iterdir()):
            if not mode_dir.is_dir():
                continue
            versions = wanted.get(mode_dir.name)
            if versions is None:
                if self._delete_tree(mode_dir, "retired mode"):
                    removed.append(mode_dir)
                continue
            for version_dir in sorted(mode_dir.iterdir()):
                if version_dir.is_dir() and version_dir.name not in versions:
                    if self._delete_tree(version_dir, "stale version"):
                        removed.append(version_dir)
        return removed

    def _delete_tree(self, path: Path, reason: str) -> bool:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            _log.warning("Could not remove cache directory %s: %s", path, exc)
            return False
        self.log(f"  Removed cached {reason}: {path.relative_to(self.paths.cache_root).as_posix()}")
        return True
