"""
Decide what a mode switch has to do.

``needs_update`` is evaluated per location, so DLC and MyDocuments content
update independently. ``needs_cache_flush`` looks at both locations at once:
any mismatch anywhere flushes the game's runtime cache.
"""

from __future__ import annotations

from dataclasses import dataclass

from install_state import InstallStateTracker, VersionRecord
from manifest_schema import DLC, LOCATION_KINDS, MY_DOCUMENTS, LocationKind, PlayMode


def _record_matches(record: VersionRecord | None, mode: PlayMode, kind: LocationKind) -> bool:
    return (
        record is not None
        and record.Mode == mode.name
        and record.Version == mode.target_version(kind)
    )


def needs_update(state: InstallStateTracker, kind: LocationKind, target: PlayMode) -> bool:
    return not _record_matches(state.read(kind), target, kind)


def needs_cache_flush(state: InstallStateTracker, target: PlayMode) -> bool:
    return any(not _record_matches(state.read(kind), target, kind) for kind in LOCATION_KINDS)


@dataclass(frozen=True)
class UpdatePlan:
    mode: PlayMode
    update_dlc: bool
    update_docs: bool

    @property
    def locations(self) -> list[LocationKind]:
        kinds = []
        if self.update_dlc:
            kinds.append(DLC)
        if self.update_docs:
            kinds.append(MY_DOCUMENTS)
        return kinds

    @property
    def any(self) -> bool:
        return self.update_dlc or self.update_docs


def plan_update(state: InstallStateTracker, target: PlayMode) -> UpdatePlan:
    return UpdatePlan(
        mode=target,
        update_dlc=needs_update(state, DLC, target),
        update_docs=needs_update(state, MY_DOCUMENTS, target),
    )
