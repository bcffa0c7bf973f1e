"""Tests for installer downloads against a localhost HTTP server (no network)."""

import functools
import sys
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent / "scripts"))

from wan_bootstrap.downloader import download_file, download_workspace, filename_from_url
from wan_bootstrap.errors import DownloadError


class TestFilenameFromUrl:
    def test_plain(self):
        url = "https://repo.anaconda.com/miniconda/Miniconda3-latest-Linux-x86_64.sh"
        assert filename_from_url(url) == "Miniconda3-latest-Linux-x86_64.sh"

    def test_query_string_ignored(self):
        assert filename_from_url("https://example.com/tool.deb?token=abc") == "tool.deb"

    def test_no_name(self):
        assert filename_from_url("https://example.com/") == "download.bin"


class TestDownloadWorkspace:
    def test_removed_after_use(self):
        with download_workspace() as workdir:
            (workdir / "file").write_text("data")
            assert workdir.is_dir()
        assert not workdir.exists()

    def test_removed_on_error(self):
        with pytest.raises(RuntimeError):
            with download_workspace() as workdir:
                raise RuntimeError("boom")
        assert not workdir.exists()


@pytest.fixture
def http_root(tmp_path):
    """Serve a directory over HTTP on localhost; yields (root_dir, base_url)."""
    root = tmp_path / "served"
    root.mkdir()
    handler = functools.partial(QuietHandler, directory=str(root))
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield root, f"http://127.0.0.1:{server.server_address[1]}"
    finally:
        server.shutdown()
        server.server_close()


class QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format, *args):
        pass


class TestDownloadFile:
    def test_downloads_over_http(self, http_root, tmp_path, capsys):
        root, base_url = http_root
        source = root / "installer.sh"
        source.write_bytes(b"#!/bin/sh\necho hi\n" * 1000)
        dest_dir = tmp_path / "dest"
        dest_dir.mkdir()

        result = download_file(f"{base_url}/installer.sh", dest_dir)

        assert result == dest_dir / "installer.sh"
        assert result.read_bytes() == source.read_bytes()
        out = capsys.readouterr().out
        assert "Progress: 100.0%" in out
        assert "Downloaded installer.sh" in out

    def test_quiet(self, http_root, tmp_path, capsys):
        root, base_url = http_root
        (root / "a.bin").write_bytes(b"x")
        dest_dir = tmp_path / "dest"
        dest_dir.mkdir()
        download_file(f"{base_url}/a.bin", dest_dir, quiet=True)
        assert capsys.readouterr().out == ""

    def test_http_404_raises_and_leaves_nothing(self, http_root, tmp_path):
        _, base_url = http_root
        dest_dir = tmp_path / "dest"
        dest_dir.mkdir()
        with pytest.raises(DownloadError) as exc_info:
            download_file(f"{base_url}/missing.sh", dest_dir)
        assert "HTTP 404" in exc_info.value.message
        assert list(dest_dir.iterdir()) == []

    def test_unreachable_host(self, tmp_path):
        with pytest.raises(DownloadError):
            download_file("http://127.0.0.1:9/installer.sh", tmp_path, timeout=2)
        assert list(tmp_path.iterdir()) == []

    def test_stream_error_removes_partial_file(self, tmp_path):
        response = MagicMock()
        response.__enter__.return_value = response
        response.headers = {"content-length": "100"}
        response.iter_content.side_effect = requests.exceptions.ChunkedEncodingError("reset")

        with patch("requests.get", return_value=response) as mock_get:
            with pytest.raises(DownloadError) as exc_info:
                download_file("https://example.com/tool.deb", tmp_path)

        assert mock_get.call_args.kwargs["stream"] is True
        assert "reset" in exc_info.value.message
        assert list(tmp_path.iterdir()) == []
