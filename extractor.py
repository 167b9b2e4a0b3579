"""
Extract a mode artifact into a live install location.

The archive is first unpacked into a hidden staging directory inside the
target, so merging is a rename on the same volume.
Each top-level entry is then merged into the target, replacing any entry of
the same name. Replaced entries are moved aside rather than deleted until the
whole merge has succeeded; if any move fails the merge is rolled back so the
live directory is left as it was.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import Callable

import py7zr
import rarfile

from artifact_cache import ArtifactCache
from manifest_schema import LocationKind
from mode_paths import ensure_dir

_log = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".zip", ".7z", ".rar"}


def extract_archive(filepath: Path, dest: Path):
    ext = filepath.suffix.lower()
    if ext == ".zip":
        with zipfile.ZipFile(filepath, "r") as zf:
            zf.extractall(dest)
    elif ext == ".7z":
        with py7zr.SevenZipFile(filepath, "r") as sz:
            sz.extractall(path=dest)
    elif ext == ".rar":
        with rarfile.RarFile(filepath, "r") as rf:
            rf.extractall(dest)
    else:
        raise ValueError(f"Unsupported archive format: {ext}")


def _remove(path: Path):
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def merge_staged(staged: Path, target: Path, aside: Path) -> list[str]:
    """Move every top-level entry of ``staged`` into ``target``.

    Existing entries with the same name are moved into ``aside``. On failure
    the target is restored and the error re-raised. Returns the merged names.
    """
    moved_in: list[Path] = []
    set_aside: list[tuple[Path, Path]] = []
    try:
        for entry in sorted(staged.iterdir()):
            dst = target / entry.name
            if dst.exists() or dst.is_symlink():
                ensure_dir(aside)
                backup = aside / entry.name
                shutil.move(str(dst), str(backup))
                set_aside.append((backup, dst))
            shutil.move(str(entry), str(dst))
            moved_in.append(dst)
    except OSError:
        _log.warning("Merge into %s failed, rolling back %d entries", target, len(moved_in))
        for dst in reversed(moved_in):
            try:
                _remove(dst)
            except OSError as exc:
                _log.warning("Rollback could not remove %s: %s", dst, exc)
        for backup, dst in reversed(set_aside):
            try:
                shutil.move(str(backup), str(dst))
            except OSError as exc:
                _log.warning("Rollback could not restore %s: %s", dst, exc)
        raise
    return [path.name for path in moved_in]


def download_and_extract(
    cache: ArtifactCache,
    url: str | None,
    target_path: Path,
    version: str,
    mode: str,
    kind: LocationKind,
    log_callback: Callable[[str], None] | None = None,
) -> tuple[bool, str]:
    log = log_callback or _log.info
    if not url:
        return True, f"'{mode}' has no {kind} content"

    artifact = cache.get_or_fetch(url, version, mode, kind)
    if artifact is None:
        return False, f"Could not download {kind} content for '{mode}' {version}"

    ensure_dir(target_path)
    staging_root = Path(tempfile.mkdtemp(prefix=".mode-staging-", dir=target_path))
    try:
        staged = ensure_dir(staging_root / "extract")
        log(f"  Extracting {artifact.name}...")
        try:
            extract_archive(artifact, staged)
        except Exception as exc:
            return False, f"Extraction of {artifact.name} failed: {exc}"

        try:
            merged = merge_staged(staged, target_path, staging_root / "replaced")
        except OSError as exc:
            return False, f"Could not merge {artifact.name} into {target_path}: {exc}"
        for name in merged:
            log(f"  Installed: {name}")
        return True, f"Installed {len(merged)} entr{'y' if len(merged) == 1 else 'ies'} from {artifact.name}"
    finally:
        shutil.rmtree(staging_root, ignore_errors=True)
