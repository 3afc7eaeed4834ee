from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from ..edits import active_edits
from ..errors import PathConflict
from ..recipe.types import EditOp, SourceRef
from ..utils import first_segment, path_sort_key


@dataclass(frozen=True)
class ManifestEntry:
    """
    One target file after tags, directories and includes were resolved.

    ``edit_tags`` is the activated tag set of the recipe the entry came
    from; edits are gated by it rather than by the top-level tags.
    """

    path: str
    sources: tuple[SourceRef, ...]
    hash: str | None = None
    edits: tuple[EditOp, ...] = ()
    tags: frozenset[str] = frozenset()
    edit_tags: frozenset[str] = frozenset()
    origin: str | None = None

    @property
    def pending_edits(self) -> list[EditOp]:
        return active_edits(self.edits, self.edit_tags)

    @property
    def reusable(self) -> bool:
        """Whether an on-disk file matching ``hash`` can be kept as is."""
        return self.hash is not None and not self.pending_edits


@dataclass(frozen=True)
class Manifest:
    entries: dict[str, ManifestEntry] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ManifestEntry]:
        for path in self.paths():
            yield self.entries[path]

    def __contains__(self, path: object) -> bool:
        return path in self.entries

    def __getitem__(self, path: str) -> ManifestEntry:
        return self.entries[path]

    def paths(self) -> list[str]:
        return sorted(self.entries, key=path_sort_key)


def controlled_segments(manifest: Manifest) -> set[str]:
    """First path segments the manifest writes into."""
    return {first_segment(path) for path in manifest.entries}


def check_nested_paths(manifest: Manifest) -> None:
    """Reject a file path that another entry needs as a parent directory."""
    paths = set(manifest.entries)
    for path in manifest.paths():
        parts = path.split("/")
        for i in range(1, len(parts)):
            parent = "/".join(parts[:i])
            if parent in paths:
                raise PathConflict(parent, nested=path)
