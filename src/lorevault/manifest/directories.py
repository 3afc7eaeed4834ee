from __future__ import annotations

import logging

from ..errors import FileCountMismatch, NoValidSource, Unavailable
from ..git.cache import MirrorCache
from ..recipe.types import DirectoryEntry, FileEntry, describe_source
from ..sources.listing import list_directory, member_source
from ..utils import is_hidden, join_subpath

logger = logging.getLogger(__name__)


def expand_directory(entry: DirectoryEntry, mirrors: MirrorCache) -> list[FileEntry]:
    """
    List the first usable source of ``entry`` and return one file per member.

    An unreadable source falls through to the next one. A listed directory
    holding anything other than regular files is an error rather than a
    reason to try the next source. ``count`` is compared with everything
    listed, before hidden members are dropped.
    """
    failures: list[str] = []
    for source in entry.sources:
        try:
            members = list_directory(source, mirrors)
        except Unavailable as exc:
            logger.warning(
                "Invalid directory source %s for %s: %s",
                describe_source(source),
                entry.path,
                exc,
            )
            failures.append(f"{describe_source(source)}: {exc}")
            continue
        break
    else:
        raise NoValidSource(entry.path, failures)

    if entry.count is not None and entry.count != len(members):
        raise FileCountMismatch(entry.path, entry.count, len(members))

    files = [
        FileEntry(
            path=join_subpath(entry.path, member),
            sources=(member_source(source, member),),
            tags=entry.tags,
        )
        for member in members
        if not (entry.ignore_hidden and is_hidden(member))
    ]
    if not files:
        raise FileCountMismatch(entry.path, None, 0)
    logger.debug(
        "Directory %s expanded to %d files from %s",
        entry.path,
        len(files),
        describe_source(source),
    )
    return files
