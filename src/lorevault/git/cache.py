from __future__ import annotations

import logging
import os
import shutil
import subprocess
import tempfile
import threading
from dataclasses import dataclass

from ..errors import Unavailable
from .target import format_git_target, mirror_dir_name, normalize_repo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TreeEntry:
    mode: str
    kind: str
    path: str


class MirrorCache:
    """
    Per-invocation cache of bare ``git clone --mirror`` copies.

    Each repository is cloned at most once, on first use. Concurrent callers
    asking for the same repository wait for the first clone instead of
    starting their own. Everything lives in a scratch directory that is
    removed by :meth:`close`.
    """

    def __init__(self, root: str | None = None, *, timeout: int | None = None):
        self._root = root
        self._owns_root = root is None
        self.timeout = timeout
        self._lock = threading.Lock()
        self._repo_locks: dict[str, threading.Lock] = {}
        self._mirrors: dict[str, str] = {}
        self._failures: dict[str, Unavailable] = {}
        self._commits: dict[tuple[str, str], str] = {}
        self._next_index = 0
        self.clone_count = 0

    def __enter__(self) -> "MirrorCache":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def root(self) -> str:
        with self._lock:
            if self._root is None:
                self._root = tempfile.mkdtemp(prefix="lorevault-mirrors-")
            return self._root

    def close(self) -> None:
        with self._lock:
            root, self._root = self._root, None
            self._mirrors.clear()
            self._commits.clear()
        if root and self._owns_root and os.path.isdir(root):
            shutil.rmtree(root, ignore_errors=True)

    def _repo_lock(self, key: str) -> threading.Lock:
        with self._lock:
            lock = self._repo_locks.get(key)
            if lock is None:
                lock = self._repo_locks[key] = threading.Lock()
            return lock

    def _git(self, *args: str, cwd: str | None = None) -> subprocess.CompletedProcess:
        cmd = ["git"]
        if cwd:
            cmd.extend(["-C", cwd])
        cmd.extend(args)
        return subprocess.run(
            cmd,
            check=True,
            capture_output=True,
            timeout=self.timeout,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )

    def mirror(self, repo: str) -> str:
        """Return the mirror directory for ``repo``, cloning it if needed."""
        key = normalize_repo(repo)
        with self._repo_lock(key):
            if key in self._mirrors:
                return self._mirrors[key]
            if key in self._failures:
                raise self._failures[key]

            with self._lock:
                index = self._next_index
                self._next_index += 1
            dest = os.path.join(self.root, f"{index:03d}-{mirror_dir_name(key)}")
            source = key if os.path.isabs(key) else repo
            logger.info("Cloning %s", repo)
            try:
                self._git("clone", "--mirror", "--quiet", source, dest)
            except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
                shutil.rmtree(dest, ignore_errors=True)
                failure = Unavailable(
                    f"Could not clone {repo}: {_describe_git_error(exc)}", locator=repo
                )
                self._failures[key] = failure
                raise failure from exc
            with self._lock:
                self.clone_count += 1
            self._mirrors[key] = dest
            return dest

    def resolve_revision(self, repo: str, rev: str) -> str:
        """
        Resolve a commit hash, tag, branch or relative expression such as
        ``main~2`` to a full commit id.
        """
        key = (normalize_repo(repo), rev)
        cached = self._commits.get(key)
        if cached:
            return cached
        mirror = self.mirror(repo)
        try:
            result = self._git(
                "rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}", cwd=mirror
            )
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            raise Unavailable(
                f"Revision {rev} not found in {repo}", locator=repo
            ) from exc
        commit = result.stdout.decode("utf-8").strip()
        self._commits[key] = commit
        return commit

    def read_blob(self, repo: str, rev: str, path: str) -> bytes:
        commit = self.resolve_revision(repo, rev)
        mirror = self.mirror(repo)
        spec = f"{commit}:{path.strip('/')}"
        try:
            result = self._git("cat-file", "blob", spec, cwd=mirror)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            raise Unavailable(
                f"Could not read {format_git_target(repo, rev, path)}",
                locator=format_git_target(repo, rev, path),
            ) from exc
        return result.stdout

    def list_tree(self, repo: str, rev: str, path: str = "") -> list[TreeEntry]:
        """
        Recursively list the tree at ``path``; returned paths are relative to
        it. An unknown path is :class:`Unavailable`.
        """
        commit = self.resolve_revision(repo, rev)
        mirror = self.mirror(repo)
        prefix = path.strip("/")
        args = ["ls-tree", "-r", "-z", "--full-tree", commit]
        if prefix:
            args.extend(["--", f"{prefix}/"])
        try:
            result = self._git(*args, cwd=mirror)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            raise Unavailable(
                f"Could not list {format_git_target(repo, rev, path)}",
                locator=format_git_target(repo, rev, path),
            ) from exc

        entries: list[TreeEntry] = []
        for record in result.stdout.decode("utf-8").split("\0"):
            if not record:
                continue
            meta, _, full_path = record.partition("\t")
            mode, kind, _ = meta.split(" ", 2)
            rel = full_path[len(prefix) + 1 :] if prefix else full_path
            entries.append(TreeEntry(mode=mode, kind=kind, path=rel))
        if not entries:
            raise Unavailable(
                f"No such directory {format_git_target(repo, rev, path)}",
                locator=format_git_target(repo, rev, path),
            )
        return entries


def _describe_git_error(exc: BaseException) -> str:
    if isinstance(exc, subprocess.CalledProcessError):
        stderr = exc.stderr
        if isinstance(stderr, bytes):
            stderr = stderr.decode("utf-8", errors="replace")
        return (stderr or "").strip() or f"git exited with {exc.returncode}"
    if isinstance(exc, subprocess.TimeoutExpired):
        return f"timed out after {exc.timeout}s"
    return str(exc)
