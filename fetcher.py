"""
Downloads with bounded retries.

A failed attempt is retried after ``base_delay * attempt`` seconds. The body
is streamed to a ``.part`` file next to the destination and only renamed into
place once the transfer completes, so the destination either holds a complete
file or does not exist.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Callable

import requests

_log = logging.getLogger(__name__)

_CHUNK_SIZE = 256 * 1024
_TIMEOUT = 60

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 2.0

# (bytes_downloaded, total_bytes_or_zero)
ProgressCallback = Callable[[int, int], None]


class FetchError(Exception):
    """A single download attempt failed."""


def _part_path(destination: Path) -> Path:
    return destination.with_name(destination.name + ".part")


def download_file(
    url: str,
    destination: Path,
    progress_cb: ProgressCallback | None = None,
) -> int:
    """Stream ``url`` to ``destination``. Returns the number of bytes written."""
    part = _part_path(destination)
    downloaded = 0
    try:
        with requests.get(url, stream=True, timeout=_TIMEOUT) as resp:
            resp.raise_for_status()
            total = int(resp.headers.get("Content-Length", 0) or 0)
            with open(part, "wb") as fh:
                for chunk in resp.iter_content(_CHUNK_SIZE):
                    if not chunk:
                        continue
                    fh.write(chunk)
                    downloaded += len(chunk)
                    if progress_cb:
                        progress_cb(downloaded, total)
        # Content-Length is the encoded size when the body is compressed.
        encoded = resp.headers.get("Content-Encoding", "identity").lower() != "identity"
        if total and not encoded and downloaded != total:
            raise FetchError(f"Incomplete download: got {downloaded} of {total} bytes")
        os.replace(part, destination)
    except (requests.RequestException, OSError) as exc:
        part.unlink(missing_ok=True)
        raise FetchError(str(exc)) from exc
    except FetchError:
        part.unlink(missing_ok=True)
        raise
    return downloaded


def fetch_with_retry(
    url: str,
    destination: str | Path,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    progress_cb: ProgressCallback | None = None,
    log_callback: Callable[[str], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Download ``url`` to ``destination``, retrying up to ``max_attempts`` times.

    Returns True when the destination holds the complete file. On False the
    destination is guaranteed not to exist.
    """
    destination = Path(destination)
    log = log_callback or _log.info
    attempts = max(1, max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            log(f"Downloading {url} (attempt {attempt}/{attempts})")
            size = download_file(url, destination, progress_cb)
            log(f"  Downloaded {destination.name} ({size} bytes)")
            return True
        except FetchError as exc:
            _log.warning("Download of %s failed on attempt %d: %s", url, attempt, exc)
            if attempt < attempts:
                delay = base_delay * attempt
                log(f"  Download failed: {exc}. Retrying in {delay:g}s...")
                sleep(delay)
            else:
                log(f"  Download failed after {attempts} attempt(s): {exc}")

    destination.unlink(missing_ok=True)
    _part_path(destination).unlink(missing_ok=True)
    return False
