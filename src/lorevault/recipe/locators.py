from __future__ import annotations

import re

from ..git.target import parse_git_target
from .types import Archive, GitBlob, LocalFile, RemoteHost, SourceRef, Url

_URL_PREFIXES = ("http://", "https://")
_REMOTE_HOST_RE = re.compile(r"^(?P<user>[^@/:\s]+)@(?P<host>[^@/:\s]+):(?P<path>.+)$")


def is_http_url(value: str) -> bool:
    return value.startswith(_URL_PREFIXES)


def parse_locator(value: str) -> SourceRef:
    """
    Parse a compact source string.

    * ``repo#revision:path`` is a git blob (``...:file.zip:member`` reaches
      into an archive stored in the repository)
    * ``http(s)://...`` is a download
    * ``user@host:path`` is a file on a remote host
    * ``/path/archive.tar.gz:member`` is a member of a local archive
    * anything else is a local path
    """
    value = value.strip()
    target = parse_git_target(value)
    if target is not None:
        path, sep, member = target.path.partition(":")
        blob = GitBlob(target.repo, target.rev, path)
        if sep and member:
            return Archive(blob, member)
        return blob
    if is_http_url(value):
        return Url(value)
    match = _REMOTE_HOST_RE.match(value)
    if match:
        return RemoteHost(
            user=match.group("user"), host=match.group("host"), path=match.group("path")
        )
    archive, sep, member = value.partition(":")
    if sep and archive and member:
        return Archive(LocalFile(archive), member)
    return LocalFile(value)
