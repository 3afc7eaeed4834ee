from __future__ import annotations

import io
import subprocess
import zipfile

import pytest
import requests

from lorevault.errors import RelativePathNotAllowed, Unavailable
from lorevault.recipe.types import Archive, Auto, LocalFile, RemoteHost, Text, Url
from lorevault.sources import remote


class _DummyResponse:
    def __init__(self, content: bytes, status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


def test_local_file(tmp_path, resolver) -> None:
    (tmp_path / "a.txt").write_bytes(b"A")
    assert resolver(LocalFile(str(tmp_path / "a.txt"))) == b"A"
    with pytest.raises(Unavailable):
        resolver(LocalFile(str(tmp_path / "missing")))
    with pytest.raises(RelativePathNotAllowed):
        resolver(LocalFile("a.txt"))


def test_text_source(resolver) -> None:
    assert resolver(Text("héllo")) == "héllo".encode("utf-8")


def test_url_source(monkeypatch, resolver) -> None:
    seen = {}

    def fake_get(url, timeout, headers):
        seen["url"] = url
        seen["agent"] = headers["User-Agent"]
        if url.endswith("missing"):
            return _DummyResponse(b"", 404)
        return _DummyResponse(b"remote")

    monkeypatch.setattr(remote.requests, "get", fake_get)
    assert resolver(Url("https://example.com/f.txt")) == b"remote"
    assert seen == {"url": "https://example.com/f.txt", "agent": "lorevault"}
    with pytest.raises(Unavailable, match="Could not download"):
        resolver(Url("https://example.com/missing"))


def test_url_connection_error(monkeypatch, resolver) -> None:
    def fake_get(url, timeout, headers):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(remote.requests, "get", fake_get)
    with pytest.raises(Unavailable, match="refused"):
        resolver(Url("https://example.com/f.txt"))


def test_remote_host_source(monkeypatch, resolver) -> None:
    calls = []

    def fake_run(cmd, capture_output, check, timeout):
        calls.append(cmd)
        if cmd[-1].endswith("missing"):
            raise subprocess.CalledProcessError(1, cmd, stderr=b"No such file")
        return subprocess.CompletedProcess(cmd, 0, stdout=b"hosts", stderr=b"")

    monkeypatch.setattr(remote.subprocess, "run", fake_run)
    assert resolver(RemoteHost("me", "h", "/etc/hosts", 2222)) == b"hosts"
    assert calls[0][:3] == ["ssh", "-p", "2222"]
    assert "me@h" in calls[0]
    with pytest.raises(Unavailable, match="No such file"):
        resolver(RemoteHost("me", "h", "/etc/missing"))


def test_archive_source(tmp_path, resolver) -> None:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr("inner/f.txt", b"F")
    (tmp_path / "a.zip").write_bytes(buffer.getvalue())
    ref = Archive(LocalFile(str(tmp_path / "a.zip")), "inner/f.txt")
    assert resolver(ref) == b"F"


def test_auto_source_is_parsed(tmp_path, resolver) -> None:
    (tmp_path / "a.txt").write_bytes(b"A")
    assert resolver(Auto(str(tmp_path / "a.txt"))) == b"A"


def test_auto_git_source(git_repo, resolver) -> None:
    assert resolver(Auto(f"{git_repo}#v1:a.txt")) == b"one\n"
