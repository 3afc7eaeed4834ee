from __future__ import annotations

import logging
import os

from ..errors import RelativePathNotAllowed, Unavailable
from ..git.cache import MirrorCache
from ..recipe.locators import parse_locator
from ..recipe.types import (
    Archive,
    Auto,
    GitBlob,
    LocalFile,
    RemoteHost,
    SourceRef,
    Text,
    Url,
    describe_source,
)
from ..runtime import get_http_timeout, get_remote_timeout
from .archive import extract_member
from .remote import fetch_remote_file, fetch_url

logger = logging.getLogger(__name__)


class SourceResolver:
    """
    Turns exactly one :data:`SourceRef` into bytes.

    Anything that makes a single source unreadable is :class:`Unavailable`;
    falling back to the next source is the caller's job. Git access goes
    through the :class:`MirrorCache` handed in by the invocation.
    """

    def __init__(
        self,
        mirrors: MirrorCache,
        *,
        http_timeout: int | None = None,
        remote_timeout: int | None = None,
    ):
        self.mirrors = mirrors
        self.http_timeout = http_timeout or get_http_timeout()
        self.remote_timeout = remote_timeout or get_remote_timeout()

    def resolve(self, ref: SourceRef) -> bytes:
        logger.debug("Fetching %s", describe_source(ref))
        if isinstance(ref, Auto):
            return self.resolve(parse_locator(ref.locator))
        if isinstance(ref, LocalFile):
            return self._read_local(ref.path)
        if isinstance(ref, GitBlob):
            return self.mirrors.read_blob(ref.repo, ref.rev, ref.path)
        if isinstance(ref, Archive):
            data = self.resolve(ref.parent)
            return extract_member(data, ref.member, label=describe_source(ref.parent))
        if isinstance(ref, Text):
            return ref.content.encode("utf-8")
        if isinstance(ref, Url):
            return fetch_url(ref.url, timeout=self.http_timeout)
        if isinstance(ref, RemoteHost):
            return fetch_remote_file(
                ref.user,
                ref.host,
                ref.path,
                port=ref.port,
                timeout=self.remote_timeout,
            )
        raise TypeError(f"Unknown source type: {type(ref)!r}")

    __call__ = resolve

    @staticmethod
    def _read_local(path: str) -> bytes:
        if not os.path.isabs(path):
            raise RelativePathNotAllowed(path)
        try:
            with open(path, "rb") as fh:
                return fh.read()
        except OSError as exc:
            raise Unavailable(f"Could not read local file {path}: {exc}", locator=path) from exc
