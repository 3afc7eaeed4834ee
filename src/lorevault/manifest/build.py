from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterable

from ..errors import IncludeError, IncludeOverrideConflict, PathConflict, UnknownTag
from ..git.target import is_remote_repo, normalize_repo
from ..recipe.load import load_recipe, self_variables
from ..recipe.types import (
    FileEntry,
    GitBlob,
    IncludeSpec,
    LocalFile,
    Recipe,
    SourceRef,
    describe_source,
    is_active,
    recipe_tags,
)
from ..recipe.variables import resolve_recipe
from ..utils import join_subpath, path_sort_key
from .directories import expand_directory
from .types import Manifest, ManifestEntry, check_nested_paths

logger = logging.getLogger(__name__)

MAX_INCLUDE_DEPTH = 16


@dataclass
class _Slot:
    entry: ManifestEntry
    tagged: bool
    local: bool


def check_tags(recipe: Recipe, tags: Iterable[str]) -> frozenset[str]:
    """Return ``tags`` as a set, rejecting any the recipe never declares."""
    activated = frozenset(tags)
    declared = set(recipe_tags(recipe))
    for tag in sorted(activated):
        if tag not in declared:
            raise UnknownTag(tag, locator=recipe.label)
    return activated


def origin_key(origin: SourceRef | None) -> str | None:
    """Identity of a recipe location, used to detect include cycles."""
    if isinstance(origin, LocalFile):
        return os.path.realpath(origin.path)
    if isinstance(origin, GitBlob):
        repo = origin.repo if is_remote_repo(origin.repo) else os.path.realpath(origin.repo)
        return f"{normalize_repo(repo)}#{origin.rev}:{origin.path.strip('/')}"
    return None


def _merge(slots: dict[str, _Slot], entry: ManifestEntry, *, local: bool) -> None:
    tagged = bool(entry.tags)
    existing = slots.get(entry.path)
    if existing is None:
        slots[entry.path] = _Slot(entry, tagged, local)
        return
    if existing.local == local:
        if existing.tagged == tagged:
            raise PathConflict(entry.path)
        if tagged:
            slots[entry.path] = _Slot(entry, tagged, local)
        return
    # Local entries are merged first, so ``existing`` is the local one here.
    if existing.tagged and not tagged:
        return
    raise IncludeOverrideConflict(entry.path, entry.origin)


def _local_entries(
    recipe: Recipe, activated: frozenset[str], resolver
) -> list[ManifestEntry]:
    files: list[FileEntry] = [f for f in recipe.files if is_active(f.tags, activated)]
    for directory in recipe.directories:
        if is_active(directory.tags, activated):
            files.extend(expand_directory(directory, resolver.mirrors))
    return [
        ManifestEntry(
            path=f.path,
            sources=f.sources,
            hash=f.hash,
            edits=f.edits,
            tags=f.tags,
            edit_tags=activated,
            origin=recipe.label,
        )
        for f in files
    ]


def _included_entries(
    inc: IncludeSpec,
    parent: Recipe,
    *,
    resolver,
    chain: tuple[str, ...],
) -> list[ManifestEntry]:
    if len(chain) >= MAX_INCLUDE_DEPTH:
        raise IncludeError(
            f"Includes are nested too deeply (max depth={MAX_INCLUDE_DEPTH}) "
            f"at {inc.config}",
            locator=inc.config,
        )
    child = load_recipe(inc.config, resolver=resolver, expected_hash=inc.hash)
    key = origin_key(child.origin)
    if key in chain:
        raise IncludeError(
            f"Recipe {child.label} includes itself (via {parent.label})",
            locator=child.label,
        )
    logger.debug("Including %s into %r", child.label, inc.path or ".")
    manifest = _assemble(
        child,
        check_tags(child, inc.with_tags),
        resolver=resolver,
        chain=chain + (key,),
    )
    if not manifest.entries:
        raise IncludeError(
            f"Including zero files from a different recipe is not allowed ({child.label})",
            locator=child.label,
        )
    return [
        ManifestEntry(
            path=join_subpath(inc.path, entry.path),
            sources=entry.sources,
            hash=entry.hash,
            edits=entry.edits,
            tags=inc.tags,
            edit_tags=entry.edit_tags,
            origin=entry.origin,
        )
        for entry in manifest
    ]


def _assemble(
    recipe: Recipe,
    activated: frozenset[str],
    *,
    resolver,
    chain: tuple[str, ...],
) -> Manifest:
    slots: dict[str, _Slot] = {}
    for entry in _local_entries(recipe, activated, resolver):
        _merge(slots, entry, local=True)
    for inc in recipe.includes:
        if not is_active(inc.tags, activated):
            logger.debug("Skipping include %s (tags %s)", inc.config, sorted(inc.tags))
            continue
        for entry in _included_entries(inc, recipe, resolver=resolver, chain=chain):
            _merge(slots, entry, local=False)
    ordered = sorted(slots, key=path_sort_key)
    return Manifest({path: slots[path].entry for path in ordered})


def assemble(recipe: Recipe, tags: Iterable[str] = (), *, resolver) -> Manifest:
    """
    Build the flat manifest of ``recipe`` for the activated ``tags``.

    ``resolver`` fetches included recipes and carries the mirror cache used
    to list git directories. File content itself is not fetched here.
    """
    if not recipe.resolved:
        builtins = self_variables(recipe.origin) if recipe.origin is not None else {}
        recipe = resolve_recipe(recipe, builtins)
    activated = check_tags(recipe, tags)
    key = origin_key(recipe.origin)
    chain = (key,) if key is not None else ()
    manifest = _assemble(recipe, activated, resolver=resolver, chain=chain)
    check_nested_paths(manifest)
    logger.info("Manifest for %s has %d files", recipe.label, len(manifest))
    for entry in manifest:
        logger.debug("  %s", describe_entry(entry))
    return manifest


def describe_entry(entry: ManifestEntry) -> str:
    sources = ", ".join(describe_source(s) for s in entry.sources)
    return f"{entry.path} <- {sources}"
