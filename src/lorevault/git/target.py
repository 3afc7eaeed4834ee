import os
import re
from dataclasses import dataclass
from urllib.parse import urlparse, urlunparse

_REMOTE_SCHEMES = ("http://", "https://", "ssh://", "git://", "file://")
_SCP_LIKE_RE = re.compile(r"^(?:[^@/:\s]+@)?[^/:\s]+:(?!//)")


@dataclass(frozen=True)
class GitTarget:
    repo: str
    rev: str
    path: str


def is_remote_repo(repo: str) -> bool:
    """True for URLs and scp-like ``git@host:owner/repo`` locators."""
    if repo.startswith(_REMOTE_SCHEMES):
        return True
    return bool(_SCP_LIKE_RE.match(repo))


def normalize_repo(repo: str) -> str:
    """
    Canonical key for a repository locator, so that the same repository
    written two ways is mirrored once.
    """
    repo = repo.strip()
    if repo.startswith(("http://", "https://", "ssh://", "git://")):
        parsed = urlparse(repo)
        path = parsed.path.rstrip("/")
        if path.endswith(".git"):
            path = path[:-4]
        return urlunparse(
            (parsed.scheme.lower(), parsed.netloc.lower(), path, "", "", "")
        )
    if repo.startswith("file://"):
        return os.path.normpath(urlparse(repo).path)
    if is_remote_repo(repo):
        host, _, path = repo.partition(":")
        path = path.rstrip("/")
        if path.endswith(".git"):
            path = path[:-4]
        return f"{host.lower()}:{path}"
    return os.path.normpath(os.path.abspath(os.path.expanduser(repo)))


def _get_host_and_repo(repo: str) -> tuple[str, str]:
    if repo.startswith(("http://", "https://", "ssh://", "git://")):
        parsed = urlparse(repo)
        host = parsed.hostname or ""
        path = parsed.path.lstrip("/")
    elif is_remote_repo(repo):
        host_part, _, path = repo.partition(":")
        host = host_part.rpartition("@")[2]
    else:
        host = "local"
        path = repo.strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    return host, path


def mirror_dir_name(repo: str) -> str:
    """Filesystem-safe directory name for the mirror of ``repo``."""
    host, path = _get_host_and_repo(normalize_repo(repo))
    raw = f"{host}/{path}" if path else host
    return re.sub(r"[^A-Za-z0-9._-]+", "_", raw).strip("_") or "repo"


def parse_git_target(locator: str) -> GitTarget | None:
    """
    Parse ``repo#revision:path-in-repo``.

    Returns ``None`` when the locator has no ``#`` revision marker. The path
    may be empty, meaning the repository root.
    """
    if "#" not in locator:
        return None
    repo, _, rest = locator.partition("#")
    rev, sep, path = rest.partition(":")
    if not repo or not rev or not sep:
        return None
    return GitTarget(repo=repo, rev=rev, path=path.strip("/"))


def format_git_target(repo: str, rev: str, path: str = "") -> str:
    return f"{repo}#{rev}:{path}"
