import os

import pytest
import requests

from uci_broker import config, install_engine


class FakeResponse:
    def __init__(self, chunks, status_error=None):
        self._chunks = chunks
        self._status_error = status_error

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def raise_for_status(self):
        if self._status_error is not None:
            raise self._status_error

    def iter_content(self, chunk_size=1):
        for chunk in self._chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


def test_release_url_per_platform() -> None:
    base = f"{config.STOCKFISH_DOWNLOAD_BASE}/{config.STOCKFISH_RELEASE}"
    assert install_engine.release_url("darwin") == f"{base}/stockfish-macos-x86-64-avx2"
    assert install_engine.release_url("win32") == f"{base}/stockfish-windows-x86-64-avx2.exe"
    assert install_engine.release_url("linux") == f"{base}/stockfish-ubuntu-x86-64-avx2"
    assert install_engine.release_url("freebsd13") == f"{base}/stockfish-ubuntu-x86-64-avx2"


def test_binary_path_uses_platform_name(tmp_path) -> None:
    assert install_engine.binary_path("win32", tmp_path) == tmp_path / "stockfish.exe"
    assert install_engine.binary_path("linux", tmp_path) == tmp_path / "stockfish"


def test_install_writes_executable(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    calls = []

    def fake_get(url, stream, timeout):
        calls.append((url, stream, timeout))
        return FakeResponse([b"\x7fELF", b"", b"rest"])

    monkeypatch.setattr(install_engine.requests, "get", fake_get)
    target = install_engine.install("linux", tmp_path / "bin")

    assert target.read_bytes() == b"\x7fELFrest"
    assert os.access(target, os.X_OK)
    assert calls == [(install_engine.release_url("linux"), True, install_engine.DOWNLOAD_TIMEOUT)]


def test_failed_download_leaves_no_file(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setattr(
        install_engine.requests,
        "get",
        lambda url, stream, timeout: FakeResponse([b"partial", requests.ConnectionError("reset")]),
    )
    with pytest.raises(requests.ConnectionError):
        install_engine.install("linux", tmp_path)
    assert not (tmp_path / "stockfish").exists()


def test_http_error_is_raised(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setattr(
        install_engine.requests,
        "get",
        lambda url, stream, timeout: FakeResponse([], requests.HTTPError("404 Not Found")),
    )
    with pytest.raises(requests.HTTPError):
        install_engine.install("darwin", tmp_path)
    assert not (tmp_path / "stockfish").exists()
