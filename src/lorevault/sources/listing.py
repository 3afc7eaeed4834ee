from __future__ import annotations

import os
import stat

from ..errors import RelativePathNotAllowed, Unavailable, UnsupportedDirectoryMember
from ..git.cache import MirrorCache
from ..recipe.types import DirectorySource, GitBlob, LocalFile, SourceRef, describe_source

_GIT_SYMLINK_MODE = "120000"


def list_directory(ref: DirectorySource, mirrors: MirrorCache) -> list[str]:
    """
    Recursively list the regular files below a directory source.

    Paths are relative, POSIX-style and sorted. Anything that is not a
    regular file (symlinks, empty directories, devices, submodules) makes
    the whole directory unusable.
    """
    if isinstance(ref, LocalFile):
        if not os.path.isabs(ref.path):
            raise RelativePathNotAllowed(ref.path)
        if not os.path.isdir(ref.path):
            raise Unavailable(f"No such directory {ref.path}", locator=ref.path)
        return sorted(_walk_local(ref.path, ""))
    if isinstance(ref, GitBlob):
        listed: list[str] = []
        for entry in mirrors.list_tree(ref.repo, ref.rev, ref.path):
            if entry.mode == _GIT_SYMLINK_MODE:
                raise UnsupportedDirectoryMember(
                    entry.path, "symlink", path=describe_source(ref)
                )
            if entry.kind != "blob":
                raise UnsupportedDirectoryMember(
                    entry.path, entry.kind, path=describe_source(ref)
                )
            listed.append(entry.path)
        return sorted(listed)
    raise TypeError(f"Directories cannot be listed from {describe_source(ref)}")


def _walk_local(root: str, prefix: str) -> list[str]:
    found: list[str] = []
    base = os.path.join(root, prefix) if prefix else root
    try:
        entries = list(os.scandir(base))
    except OSError as exc:
        raise Unavailable(f"Could not list {base}: {exc}", locator=root) from exc
    for entry in entries:
        rel = f"{prefix}/{entry.name}" if prefix else entry.name
        mode = entry.stat(follow_symlinks=False).st_mode
        if stat.S_ISLNK(mode):
            raise UnsupportedDirectoryMember(rel, "symlink", path=root)
        if stat.S_ISDIR(mode):
            nested = _walk_local(root, rel)
            if not nested:
                raise UnsupportedDirectoryMember(rel, "empty directory", path=root)
            found.extend(nested)
        elif stat.S_ISREG(mode):
            found.append(rel)
        else:
            raise UnsupportedDirectoryMember(rel, "not a regular file", path=root)
    return found


def member_source(ref: DirectorySource, member: str) -> SourceRef:
    if isinstance(ref, LocalFile):
        return LocalFile(os.path.join(ref.path, *member.split("/")))
    if isinstance(ref, GitBlob):
        base = ref.path.strip("/")
        return GitBlob(ref.repo, ref.rev, f"{base}/{member}" if base else member)
    raise TypeError(f"Directories cannot be listed from {describe_source(ref)}")
