from unittest.mock import patch

import pytest
import requests

import fetcher


class FakeResponse:
    def __init__(self, chunks, status=200, length=None, encoding=None):
        self.chunks = chunks
        self.status = status
        total = sum(len(c) for c in chunks) if length is None else length
        self.headers = {"Content-Length": str(total)}
        if encoding:
            self.headers["Content-Encoding"] = encoding

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def iter_content(self, chunk_size):
        yield from self.chunks


def test_download_file_streams_to_destination(tmp_path):
    dest = tmp_path / "mod.zip"
    progress = []
    with patch("fetcher.requests.get", return_value=FakeResponse([b"abc", b"def"])):
        size = fetcher.download_file("https://x/mod.zip", dest, lambda d, t: progress.append((d, t)))

    assert size == 6
    assert dest.read_bytes() == b"abcdef"
    assert progress == [(3, 6), (6, 6)]
    assert not (tmp_path / "mod.zip.part").exists()


def test_download_file_truncated_body_is_an_error(tmp_path):
    dest = tmp_path / "mod.zip"
    with patch("fetcher.requests.get", return_value=FakeResponse([b"abc"], length=10)):
        with pytest.raises(fetcher.FetchError, match="Incomplete"):
            fetcher.download_file("https://x/mod.zip", dest)
    assert not dest.exists()
    assert not (tmp_path / "mod.zip.part").exists()


def test_download_file_compressed_body_ignores_encoded_length(tmp_path):
    # requests decodes gzip bodies, so more bytes arrive than Content-Length says.
    dest = tmp_path / "mod.zip"
    body = [b"x" * 4000, b"y" * 1002]
    with patch("fetcher.requests.get", return_value=FakeResponse(body, length=43, encoding="gzip")):
        size = fetcher.download_file("https://x/mod.zip", dest)

    assert size == 5002
    assert dest.stat().st_size == 5002
    assert not (tmp_path / "mod.zip.part").exists()


def test_retry_uses_linear_backoff_then_succeeds(tmp_path):
    dest = tmp_path / "mod.zip"
    responses = [FakeResponse([], status=503), FakeResponse([], status=503), FakeResponse([b"ok"])]
    sleeps = []
    with patch("fetcher.requests.get", side_effect=responses) as get:
        ok = fetcher.fetch_with_retry(
            "https://x/mod.zip", dest, max_attempts=3, base_delay=2, sleep=sleeps.append,
            log_callback=lambda _: None,
        )

    assert ok
    assert get.call_count == 3
    assert sleeps == [2, 4]
    assert dest.read_bytes() == b"ok"


def test_retry_exhaustion_leaves_nothing(tmp_path):
    dest = tmp_path / "mod.zip"
    sleeps = []
    with patch(
        "fetcher.requests.get", side_effect=requests.ConnectionError("offline")
    ) as get:
        ok = fetcher.fetch_with_retry(
            "https://x/mod.zip", dest, max_attempts=3, base_delay=1.5, sleep=sleeps.append,
            log_callback=lambda _: None,
        )

    assert not ok
    assert get.call_count == 3
    assert sleeps == [1.5, 3.0]
    assert not dest.exists()
    assert list(tmp_path.iterdir()) == []
