"""
Play-mode switch orchestration.

Workflow for a selected mode:
    1. decide which locations (DLC, MyDocuments) are out of date
    2. for those: remove other modes' files, prune the artifact cache,
       download/extract the new content and record the installed version
    3. flush the game's runtime cache if anything installed differed from
       the selected mode before the switch

User-data migration is keyed on a change of mode rather than a version
mismatch, so it runs before step 1 and only through ``switch_mode``.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

import fetcher
from artifact_cache import ArtifactCache
from extractor import download_and_extract
from install_state import InstallStateTracker, VersionRecord
from manifest_schema import LOCATION_KINDS, LocationKind, ManifestSettings, ModeManifest, PlayMode
from mode_paths import EnginePaths, ensure_dir
from stale_cleanup import clean_obsolete
from update_decision import needs_cache_flush, plan_update
from user_data_migrator import MigrationReport, UserDataMigrator

_log = logging.getLogger(__name__)


class EnginePreconditionError(Exception):
    """A required root is missing or the selected mode is unknown."""


@dataclass
class SwitchResult:
    success: bool
    message: str
    mode: str = ""
    updated: list[LocationKind] = field(default_factory=list)
    failed: list[LocationKind] = field(default_factory=list)
    cache_flushed: bool = False
    migration: MigrationReport | None = None


class ModeSwitcher:
    """
    Entry point used by the menu.

    Workflow:
        1. available_modes() to list what can be selected
        2. switch_mode() to migrate user data and bring the mode up to date
        3. clear_runtime_cache() for a stand-alone cache flush
    """

    def __init__(
        self,
        paths: EnginePaths,
        manifest: ModeManifest,
        log_callback: Callable[[str], None] | None = None,
        progress_cb: fetcher.ProgressCallback | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.paths = paths
        self.manifest = manifest
        self._log_cb = log_callback or _log.info
        settings = manifest.settings
        self.state = InstallStateTracker(paths, clock=clock)
        self.cache = ArtifactCache(
            paths,
            max_attempts=settings.download_retries,
            base_delay=settings.retry_delay_seconds,
            log_callback=self._log_cb,
            progress_cb=progress_cb,
        )
        self.migrator = UserDataMigrator(paths, log_callback=self._log_cb)

    def log(self, msg: str):
        self._log_cb(msg)

    # ── Queries ───────────────────────────────────────────────────────

    def is_available_offline(self, mode: PlayMode) -> bool:
        for kind in LOCATION_KINDS:
            url = mode.download_url(kind)
            if url and self.cache.find_cached(url, mode.target_version(kind), mode.name, kind) is None:
                return False
        return True

    def available_modes(self, offline: bool = False) -> list[PlayMode]:
        modes = list(self.manifest.play_modes)
        if offline:
            modes = [mode for mode in modes if self.is_available_offline(mode)]
        return modes

    def installed_state(self) -> dict[LocationKind, VersionRecord | None]:
        return {kind: self.state.read(kind) for kind in LOCATION_KINDS}

    def validate_paths(self) -> list[str]:
        issues = []
        if not self.paths.game_root.is_dir():
            issues.append(f"Game directory does not exist: {self.paths.game_root}")
        if not self.paths.docs_root.is_dir():
            issues.append(f"Documents game directory does not exist: {self.paths.docs_root}")
        return issues

    def _require(self, selected_mode: str) -> PlayMode:
        issues = self.validate_paths()
        if issues:
            raise EnginePreconditionError("; ".join(issues))
        mode = self.manifest.find_mode(selected_mode)
        if mode is None:
            raise EnginePreconditionError(f"Unknown play mode: {selected_mode!r}")
        return mode

    # ── Runtime cache ─────────────────────────────────────────────────

    def clear_runtime_cache(self) -> tuple[bool, str]:
        cache_dir = self.paths.runtime_cache_root
        if not cache_dir.is_dir():
            return True, "Runtime cache is already empty"

        removed = 0
        failures = []
        try:
            entries = sorted(cache_dir.iterdir())
        except OSError as exc:
            _log.warning("Could not list runtime cache %s: %s", cache_dir, exc)
            return False, f"Could not read runtime cache: {exc}"
        for entry in entries:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
            except OSError as exc:
                _log.warning("Could not remove runtime cache entry %s: %s", entry, exc)
                failures.append(entry.name)

        if failures:
            return False, f"Cleared {removed} runtime cache item(s); could not remove: {', '.join(failures)}"
        self.log(f"Cleared runtime cache ({removed} item(s))")
        return True, f"Cleared {removed} runtime cache item(s)"

    # ── Switching ─────────────────────────────────────────────────────

    def process_mode_switch(
        self,
        selected_mode: str,
        previous_mode: str | None = None,
        settings: ManifestSettings | None = None,
    ) -> SwitchResult:
        settings = settings or self.manifest.settings
        try:
            mode = self._require(selected_mode)
        except EnginePreconditionError as exc:
            self.log(f"Cannot switch to '{selected_mode}': {exc}")
            return SwitchResult(success=False, message=str(exc), mode=selected_mode)

        if previous_mode and previous_mode != mode.name:
            self.log(f"Switching play mode: '{previous_mode}' -> '{mode.name}'")
        else:
            self.log(f"Checking play mode '{mode.name}'...")

        plan = plan_update(self.state, mode)
        flush = needs_cache_flush(self.state, mode)
        result = SwitchResult(success=True, message="", mode=mode.name)

        if plan.any:
            others = self.manifest.other_modes(mode.name)
            for kind in plan.locations:
                removed, failed = clean_obsolete(
                    self.paths, others, kind, settings.cleanup_on_mode_switch, self._log_cb
                )
                if removed or failed:
                    self.log(f"  {kind} cleanup: removed {removed}, failed {failed}")

            try:
                self.cache.garbage_collect(self.manifest.play_modes)
            except OSError as exc:
                _log.warning("Artifact cache cleanup failed: %s", exc)
                self.log(f"  WARNING: could not prune the artifact cache: {exc}")

            try:
                for kind in LOCATION_KINDS:
                    ensure_dir(self.paths.location_root(kind))
            except OSError as exc:
                _log.warning("Could not create install locations: %s", exc)
                self.log(f"  Could not create install locations: {exc}")
                result.failed.extend(plan.locations)

            for kind in plan.locations:
                if kind in result.failed:
                    continue
                if self._update_location(mode, kind):
                    result.updated.append(kind)
                else:
                    result.failed.append(kind)
        else:
            self.log(f"'{mode.name}' is already up to date")

        if flush:
            ok, msg = self.clear_runtime_cache()
            result.cache_flushed = ok
            if not ok:
                self.log(f"  WARNING: {msg}")

        if result.failed:
            result.success = False
            result.message = (
                f"Update of {', '.join(result.failed)} for '{mode.name}' failed; "
                "it will be retried next time"
            )
        elif result.updated:
            result.message = f"Updated {', '.join(result.updated)} for '{mode.name}'"
        else:
            result.message = f"'{mode.name}' is up to date"
        return result

    def _update_location(self, mode: PlayMode, kind: LocationKind) -> bool:
        version = mode.target_version(kind)
        self.log(f"Updating {kind} to '{mode.name}' {version}...")
        try:
            ok, msg = download_and_extract(
                self.cache,
                mode.download_url(kind),
                self.paths.location_root(kind),
                version,
                mode.name,
                kind,
                log_callback=self._log_cb,
            )
            self.log(f"  {msg}")
            if ok:
                self.state.write(mode.name, version, kind)
            return ok
        except OSError as exc:
            _log.warning("Update of %s for '%s' failed: %s", kind, mode.name, exc)
            self.log(f"  Update of {kind} failed: {exc}")
            return False

    def switch_mode(self, selected_mode: str, previous_mode: str | None = None) -> SwitchResult:
        """Migrate user data if the mode changed, then bring the mode up to date.

        The migration source is the mode recorded as owning the live user
        data. ``previous_mode`` and the install records are only consulted
        when no owner has been recorded yet.
        """
        try:
            mode = self._require(selected_mode)
        except EnginePreconditionError as exc:
            self.log(f"Cannot switch to '{selected_mode}': {exc}")
            return SwitchResult(success=False, message=str(exc), mode=selected_mode)

        if previous_mode is None:
            previous_mode = self.state.last_used_mode()
        owner = self.migrator.owner() or previous_mode

        migration = None
        if self.manifest.settings.backup_user_data and owner and owner != mode.name:
            migration = self.migrator.switch(mode.name, owner)
        elif owner != mode.name:
            self.migrator.set_owner(mode.name)

        result = self.process_mode_switch(mode.name, previous_mode)
        result.migration = migration
        return result
