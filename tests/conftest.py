"""
Shared fixtures and helpers for the play-mode switcher test suite.
"""

import io
import zipfile
from pathlib import Path

import pytest

import fetcher
from manifest_schema import ModeManifest
from mode_paths import EnginePaths

EUI_DLC_URL = "https://example.org/files/eui_dlc.zip"
EUI_DOCS_URL = "https://example.org/files/eui_docs.zip?token=abc"


def zip_bytes(members: dict[str, bytes | str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return buf.getvalue()


def make_zip(path: Path, members: dict[str, bytes | str]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(zip_bytes(members))
    return path


def write_tree(root: Path, files: dict[str, str]):
    for rel, text in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")


def read_tree(root: Path) -> dict[str, bytes]:
    if not root.exists():
        return {}
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


def make_manifest(**settings) -> ModeManifest:
    """The two-mode manifest used throughout: Standard (no content) and EUI."""
    base_settings = {"RetryDelaySeconds": 0}
    base_settings.update(settings)
    return ModeManifest.model_validate(
        {
            "Settings": base_settings,
            "PlayModes": [
                {
                    "Name": "Standard",
                    "MultiplayerCompatible": True,
                    "OnlineVersion": {"DLC": "1.0.0", "MyDocuments": "1.0.0"},
                },
                {
                    "Name": "EUI",
                    "OnlineVersion": {"DLC": "2.0.0", "MyDocuments": "2.0.0"},
                    "Folders": ["DLC/UI_bc1"],
                    "Files": ["MyDocuments/Saves/eui_placeholder.txt"],
                    "DLCDownload": EUI_DLC_URL,
                    "DocsDownload": EUI_DOCS_URL,
                },
            ],
        }
    )


class FakeDownloads:
    """Stands in for ``fetcher.download_file``; serves bytes by URL."""

    def __init__(self):
        self.payloads: dict[str, bytes] = {}
        self.calls: list[str] = []

    def __call__(self, url, destination, progress_cb=None):
        self.calls.append(url)
        if url not in self.payloads:
            raise fetcher.FetchError(f"404 for {url}")
        data = self.payloads[url]
        Path(destination).write_bytes(data)
        return len(data)


@pytest.fixture
def paths(tmp_path):
    """EnginePaths over fresh game and documents roots."""
    game = tmp_path / "game"
    docs = tmp_path / "docs"
    game.mkdir()
    docs.mkdir()
    return EnginePaths.from_roots(game, docs)


@pytest.fixture
def downloads(monkeypatch):
    fake = FakeDownloads()
    monkeypatch.setattr(fetcher, "download_file", fake)
    return fake


@pytest.fixture
def eui_downloads(downloads):
    downloads.payloads[EUI_DLC_URL] = zip_bytes(
        {"UI_bc1/EUI.xml": "<eui/>", "UI_bc1/Textures/icon.dds": b"\x00\x01"}
    )
    downloads.payloads[EUI_DOCS_URL] = zip_bytes({"Saves/eui_placeholder.txt": "placeholder"})
    return downloads
