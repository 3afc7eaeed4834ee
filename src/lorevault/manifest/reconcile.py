from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator, Protocol

from ..concurrency import run_indexed_tasks_fail_fast
from ..edits import apply_edits
from ..errors import (
    NoValidSource,
    SourceHashMismatch,
    SyncAborted,
    SyncError,
    Unavailable,
)
from ..recipe.types import SourceRef, describe_source
from ..runtime import get_sync_jobs
from ..utils import compute_hash
from .types import Manifest, ManifestEntry, check_nested_paths, controlled_segments

logger = logging.getLogger(__name__)

Fetch = Callable[[SourceRef], bytes]

WHOLE_TARGET = "."


class SyncMode(Enum):
    FULL = "full"
    SKIP_FIRST_LEVEL = "skip-first-level"


class DirectorySnapshot(Protocol):
    def read(self, path: str) -> bytes | None:
        """Current bytes of the regular file at ``path``, or ``None``."""


class FilesystemSnapshot:
    """Read-only view of an existing target directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def read(self, path: str) -> bytes | None:
        file_path = self.root.joinpath(*path.split("/"))
        if file_path.is_symlink() or not file_path.is_file():
            return None
        try:
            return file_path.read_bytes()
        except OSError:
            return None


@dataclass(frozen=True)
class PlannedFile:
    path: str
    data: bytes
    reused: bool = False
    source: str | None = None


@dataclass(frozen=True)
class SyncPlan:
    target: Path
    mode: SyncMode
    files: tuple[PlannedFile, ...]
    deletions: tuple[str, ...]
    reused: tuple[str, ...] = ()
    fetched: int = 0


@dataclass(frozen=True)
class SyncResult:
    target: str
    mode: SyncMode
    file_count: int
    reused: int = 0
    fetched: int = 0
    changed: bool = True
    deleted: tuple[str, ...] = field(default_factory=tuple)


def resolve_entry(
    entry: ManifestEntry, snapshot: DirectorySnapshot, fetch: Fetch
) -> PlannedFile:
    """
    Compute the final bytes of one manifest entry.

    Sources are tried in order. A declared hash is checked against the
    fetched bytes before edits; a source whose bytes do not match is passed
    over like an unavailable one.
    """
    if entry.reusable:
        existing = snapshot.read(entry.path)
        if existing is not None and compute_hash(existing) == entry.hash:
            logger.debug("Reusing %s from the target directory", entry.path)
            return PlannedFile(entry.path, existing, reused=True)

    failures: list[str] = []
    mismatched = False
    for source in entry.sources:
        label = describe_source(source)
        try:
            data = fetch(source)
        except Unavailable as exc:
            logger.warning("Invalid source %s for %s: %s", label, entry.path, exc)
            failures.append(f"{label}: {exc}")
            continue
        if entry.hash is not None:
            actual = compute_hash(data)
            if actual != entry.hash:
                logger.warning(
                    "Hash did not match for %s from %s: expected %s, got %s",
                    entry.path,
                    label,
                    entry.hash,
                    actual,
                )
                failures.append(f"{label}: hash {actual}")
                mismatched = True
                continue
        data = apply_edits(data, entry.edits, entry.edit_tags, path=entry.path)
        return PlannedFile(entry.path, data, source=label)

    if mismatched:
        raise SourceHashMismatch(entry.path, entry.hash, failures)
    raise NoValidSource(entry.path, failures)


def build_sync_plan(
    manifest: Manifest,
    snapshot: DirectorySnapshot,
    fetch: Fetch,
    *,
    target: str | Path = WHOLE_TARGET,
    mode: SyncMode = SyncMode.FULL,
    jobs: int | None = None,
) -> SyncPlan:
    """
    Resolve every manifest entry into bytes without touching the target.

    Any fatal entry error propagates before a plan exists, so nothing is
    ever written for a manifest that cannot be fully resolved.
    """
    check_nested_paths(manifest)
    entries = list(manifest)
    tasks = [
        (index, lambda entry=entry: resolve_entry(entry, snapshot, fetch))
        for index, entry in enumerate(entries)
    ]
    results = run_indexed_tasks_fail_fast(tasks, max_workers=jobs or get_sync_jobs())
    files = tuple(planned for _, planned in results)

    if mode is SyncMode.FULL:
        deletions: tuple[str, ...] = (WHOLE_TARGET,)
    else:
        deletions = tuple(sorted(controlled_segments(manifest)))
    reused = tuple(f.path for f in files if f.reused)
    return SyncPlan(
        target=Path(target),
        mode=mode,
        files=files,
        deletions=deletions,
        reused=reused,
        fetched=len(files) - len(reused),
    )


def _collect_parent_dirs(rel_path: str, target: set[str]) -> None:
    parts = rel_path.split("/")[:-1]
    for i in range(1, len(parts) + 1):
        target.add("/".join(parts[:i]))


def _walk(root: Path, rel: str) -> Iterator[tuple[str, str]]:
    """Yield ``(kind, relative path)`` for ``rel`` and everything below it."""
    path = root.joinpath(*rel.split("/")) if rel else root
    if path.is_symlink():
        yield "other", rel
    elif path.is_file():
        yield "file", rel
    elif path.is_dir():
        if rel:
            yield "dir", rel
        for child in sorted(os.listdir(path)):
            yield from _walk(root, f"{rel}/{child}" if rel else child)
    elif path.exists():
        yield "other", rel


def plan_matches_existing(plan: SyncPlan) -> bool:
    """True when the part of the target the plan controls already equals it."""
    root = plan.target
    if not root.is_dir() or root.is_symlink():
        return False

    expected = {f.path: f.data for f in plan.files}
    expected_dirs: set[str] = set()
    for path in expected:
        _collect_parent_dirs(path, expected_dirs)

    if plan.mode is SyncMode.FULL:
        scan = [""]
    else:
        scan = [
            seg
            for seg in plan.deletions
            if root.joinpath(seg).exists() or root.joinpath(seg).is_symlink()
        ]

    seen: set[str] = set()
    for start in scan:
        for kind, rel in _walk(root, start):
            if kind == "dir":
                if rel not in expected_dirs:
                    return False
            elif kind == "file":
                if rel not in expected:
                    return False
                try:
                    if root.joinpath(*rel.split("/")).read_bytes() != expected[rel]:
                        return False
                except OSError:
                    return False
                seen.add(rel)
            else:
                return False
    return seen == set(expected)


def _remove(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _clear_directory(path: Path) -> None:
    if path.is_symlink() or (path.exists() and not path.is_dir()):
        raise SyncError(
            f"Path {path} exists, but it is not a directory", path=str(path)
        )
    if not path.exists():
        return
    for item in path.iterdir():
        _remove(item)


def _write_files(root: Path, files: tuple[PlannedFile, ...]) -> None:
    for planned in files:
        dest = root.joinpath(*planned.path.split("/"))
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(planned.data)


def apply_sync_plan(plan: SyncPlan) -> SyncResult:
    """
    Mutate the target so its controlled part equals ``plan``.

    ``FULL`` empties the whole target first; ``SKIP_FIRST_LEVEL`` only
    removes the top-level entries the manifest writes into.
    """
    root = plan.target
    if root.is_symlink() or (root.exists() and not root.is_dir()):
        raise SyncError(f"Path {root} exists, but it is not a directory", path=str(root))

    if plan.mode is SyncMode.FULL:
        _clear_directory(root)
    else:
        for segment in plan.deletions:
            _remove(root / segment)
    root.mkdir(parents=True, exist_ok=True)
    _write_files(root, plan.files)
    logger.info("Wrote %d files to %s", len(plan.files), root)
    return SyncResult(
        target=str(root),
        mode=plan.mode,
        file_count=len(plan.files),
        reused=len(plan.reused),
        fetched=plan.fetched,
        changed=True,
        deleted=plan.deletions,
    )


def _is_cwd(path: Path) -> bool:
    try:
        return path.resolve() == Path.cwd().resolve()
    except OSError:
        return False


def _absolute_target(target: str | Path) -> Path:
    return Path(os.path.abspath(os.path.expanduser(str(target))))


def sync_manifest(
    manifest: Manifest,
    target: str | Path,
    mode: SyncMode = SyncMode.FULL,
    *,
    resolver: Fetch,
    confirm: Callable[[SyncPlan], bool] | None = None,
    jobs: int | None = None,
) -> SyncResult:
    """
    Reconcile ``target`` with ``manifest``.

    ``confirm`` is asked before an existing target is modified; declining
    raises :class:`SyncAborted`. Nothing is written when the controlled part
    of the target already matches.
    """
    root = _absolute_target(target)
    if mode is SyncMode.FULL and _is_cwd(root):
        raise SyncError(
            "This would overwrite your current working directory", path=str(root)
        )
    if root.is_symlink() or (root.exists() and not root.is_dir()):
        raise SyncError(f"Path {root} exists, but it is not a directory", path=str(root))

    plan = build_sync_plan(
        manifest,
        FilesystemSnapshot(root),
        resolver,
        target=root,
        mode=mode,
        jobs=jobs,
    )
    if plan_matches_existing(plan):
        logger.info("%s is already up to date", root)
        return SyncResult(
            target=str(root),
            mode=mode,
            file_count=len(plan.files),
            reused=len(plan.reused),
            fetched=plan.fetched,
            changed=False,
        )
    if root.exists() and confirm is not None and not confirm(plan):
        raise SyncAborted("Folder overwrite not confirmed", path=str(root))
    return apply_sync_plan(plan)


def clean_target(
    target: str | Path,
    mode: SyncMode,
    manifest: Manifest | None = None,
    *,
    confirm: Callable[[list[Path]], bool] | None = None,
) -> list[Path]:
    """
    Delete what a sync would own: the whole target in ``FULL`` mode, or the
    manifest's top-level segments in ``SKIP_FIRST_LEVEL`` mode.
    """
    root = _absolute_target(target)
    if mode is SyncMode.FULL:
        to_delete = [root]
    else:
        if manifest is None:
            raise SyncError("A manifest is required to clean controlled paths")
        to_delete = [root / seg for seg in sorted(controlled_segments(manifest))]

    if confirm is not None and not confirm(to_delete):
        raise SyncAborted("Deletion not confirmed", path=str(root))

    removed: list[Path] = []
    for path in to_delete:
        if not path.exists() and not path.is_symlink():
            logger.warning("Skipping missing path %s", path)
            continue
        _remove(path)
        removed.append(path)
    return removed
