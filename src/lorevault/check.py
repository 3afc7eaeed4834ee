from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from .concurrency import run_indexed_tasks_fail_fast
from .edits import apply_edits
from .errors import EditError, Unavailable
from .manifest.types import Manifest, ManifestEntry
from .recipe.types import SourceRef, describe_source
from .runtime import get_sync_jobs
from .utils import compute_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceStatus:
    source: str
    ok: bool
    detail: str = ""


@dataclass(frozen=True)
class EntryReport:
    path: str
    sources: tuple[SourceStatus, ...]
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and any(s.ok for s in self.sources)

    @property
    def valid_source(self) -> str | None:
        for status in self.sources:
            if status.ok:
                return status.source
        return None


@dataclass(frozen=True)
class CheckReport:
    entries: tuple[EntryReport, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return all(entry.ok for entry in self.entries)

    @property
    def failures(self) -> list[EntryReport]:
        return [entry for entry in self.entries if not entry.ok]


def check_entry(entry: ManifestEntry, fetch: Callable[[SourceRef], bytes]) -> EntryReport:
    """Try every source of ``entry``, not just the first valid one."""
    statuses: list[SourceStatus] = []
    first_valid: bytes | None = None
    for source in entry.sources:
        label = describe_source(source)
        try:
            data = fetch(source)
        except Unavailable as exc:
            statuses.append(SourceStatus(label, False, str(exc)))
            continue
        actual = compute_hash(data)
        if entry.hash is not None and actual != entry.hash:
            statuses.append(SourceStatus(label, False, f"hash {actual}"))
            continue
        statuses.append(SourceStatus(label, True, actual))
        if first_valid is None:
            first_valid = data

    error = None
    if first_valid is None:
        error = "no valid source"
    else:
        try:
            apply_edits(first_valid, entry.edits, entry.edit_tags, path=entry.path)
        except EditError as exc:
            error = str(exc)
    return EntryReport(entry.path, tuple(statuses), error)


def check_manifest(
    manifest: Manifest,
    fetch: Callable[[SourceRef], bytes],
    *,
    jobs: int | None = None,
) -> CheckReport:
    entries = list(manifest)
    tasks = [
        (index, lambda entry=entry: check_entry(entry, fetch))
        for index, entry in enumerate(entries)
    ]
    results = run_indexed_tasks_fail_fast(tasks, max_workers=jobs or get_sync_jobs())
    report = CheckReport(tuple(r for _, r in results))
    for failure in report.failures:
        logger.warning("No valid source for %s", failure.path)
    return report
