"""
Remove files and folders owned by modes other than the one being activated.
"""

from __future__ import annotations

import logging
import shutil
from typing import Callable, Iterable

from manifest_schema import LocationKind, PlayMode
from mode_paths import EnginePaths

_log = logging.getLogger(__name__)


def clean_obsolete(
    paths: EnginePaths,
    other_modes: Iterable[PlayMode],
    kind: LocationKind,
    enabled: bool,
    log_callback: Callable[[str], None] | None = None,
) -> tuple[int, int]:
    """Delete every ``kind`` entry declared by ``other_modes``.

    Returns ``(removed, failed)``. No-op when ``enabled`` is False.
    """
    if not enabled:
        return 0, 0

    log = log_callback or _log.info
    root = paths.location_root(kind)
    removed = failed = 0
    seen: set[str] = set()

    for mode in other_modes:
        for entry in mode.entries_for(kind):
            if entry.path in seen:
                continue
            seen.add(entry.path)
            target = root / entry.path
            if not (target.exists() or target.is_symlink()):
                continue
            try:
                if target.is_dir() and not target.is_symlink():
                    shutil.rmtree(target)
                else:
                    target.unlink()
            except OSError as exc:
                failed += 1
                _log.warning("Could not remove %s (from '%s'): %s", target, mode.name, exc)
                continue
            removed += 1
            log(f"  Removed {kind}/{entry.path} (from '{mode.name}')")

    return removed, failed
