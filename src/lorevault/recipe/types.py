from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Union


@dataclass(frozen=True)
class Auto:
    """A compact locator string, parsed once its variables are expanded."""

    locator: str


@dataclass(frozen=True)
class LocalFile:
    path: str


@dataclass(frozen=True)
class GitBlob:
    repo: str
    rev: str
    path: str


@dataclass(frozen=True)
class Archive:
    parent: "SourceRef"
    member: str


@dataclass(frozen=True)
class Text:
    content: str
    substitute: bool = True


@dataclass(frozen=True)
class Url:
    url: str


@dataclass(frozen=True)
class RemoteHost:
    user: str
    host: str
    path: str
    port: int = 22


SourceRef = Union[Auto, LocalFile, GitBlob, Archive, Text, Url, RemoteHost]
DirectorySource = Union[Auto, LocalFile, GitBlob]


def describe_source(ref: SourceRef) -> str:
    """Render a source the way it would be written as a compact locator."""
    if isinstance(ref, Auto):
        return ref.locator
    if isinstance(ref, LocalFile):
        return ref.path
    if isinstance(ref, GitBlob):
        return f"{ref.repo}#{ref.rev}:{ref.path}"
    if isinstance(ref, Archive):
        return f"{describe_source(ref.parent)}:{ref.member}"
    if isinstance(ref, Text):
        preview = ref.content.splitlines()[0] if ref.content else ""
        if len(preview) > 40:
            preview = preview[:37] + "..."
        return f"text({preview!r})"
    if isinstance(ref, Url):
        return ref.url
    if isinstance(ref, RemoteHost):
        port = f" (port {ref.port})" if ref.port != 22 else ""
        return f"{ref.user}@{ref.host}:{ref.path}{port}"
    raise TypeError(f"Unknown source type: {type(ref)!r}")


Position = Union[Literal["start", "end"], int]


@dataclass(frozen=True)
class Insert:
    content: str
    position: Position = "end"
    tags: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Replace:
    old: str
    new: str
    optional: bool = False
    tags: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Delete:
    start: int
    end: int
    tags: frozenset[str] = frozenset()


EditOp = Union[Insert, Replace, Delete]


def is_active(tags: frozenset[str], activated: frozenset[str] | set[str]) -> bool:
    """Untagged items are always active, tagged ones need a shared tag."""
    return not tags or bool(tags & set(activated))


@dataclass(frozen=True)
class FileEntry:
    path: str
    sources: tuple[SourceRef, ...]
    hash: str | None = None
    tags: frozenset[str] = frozenset()
    edits: tuple[EditOp, ...] = ()


@dataclass(frozen=True)
class DirectoryEntry:
    path: str
    sources: tuple[DirectorySource, ...]
    count: int | None = None
    ignore_hidden: bool = False
    tags: frozenset[str] = frozenset()


@dataclass(frozen=True)
class IncludeSpec:
    config: str
    path: str = ""
    hash: str | None = None
    tags: frozenset[str] = frozenset()
    with_tags: frozenset[str] = frozenset()


@dataclass(frozen=True)
class Recipe:
    variables: dict[str, str] = field(default_factory=dict)
    files: tuple[FileEntry, ...] = ()
    directories: tuple[DirectoryEntry, ...] = ()
    includes: tuple[IncludeSpec, ...] = ()
    origin: SourceRef | None = None
    resolved: bool = False

    @property
    def label(self) -> str:
        if self.origin is None:
            return "<recipe>"
        return describe_source(self.origin)


def recipe_tags(recipe: Recipe) -> list[str]:
    """Every tag the recipe itself declares, sorted."""
    found: set[str] = set()
    for entry in recipe.files:
        found.update(entry.tags)
        for edit in entry.edits:
            found.update(edit.tags)
    for directory in recipe.directories:
        found.update(directory.tags)
    for inc in recipe.includes:
        found.update(inc.tags)
    return sorted(found)
