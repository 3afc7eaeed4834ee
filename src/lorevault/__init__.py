from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from .utils import hash_file

__all__ = ["check", "clean", "hash_file", "manifest_list", "show", "sync", "tags"]


@contextmanager
def _session() -> Iterator:
    from .git.cache import MirrorCache
    from .runtime import get_git_timeout
    from .sources.resolver import SourceResolver

    with MirrorCache(timeout=get_git_timeout()) as mirrors:
        yield SourceResolver(mirrors)


def _mode(mode):
    from .manifest.reconcile import SyncMode

    return mode if isinstance(mode, SyncMode) else SyncMode(mode)


def _manifest(recipe: str, tags: Iterable[str], resolver):
    from .manifest.build import assemble
    from .recipe.load import load_recipe

    loaded = load_recipe(recipe, resolver=resolver, allow_relative=True)
    return assemble(loaded, tags, resolver=resolver)


def sync(
    recipe: str,
    target: str | Path,
    tags: Iterable[str] = (),
    mode="full",
    confirm=None,
    *,
    jobs: int | None = None,
):
    """
    Make ``target`` match ``recipe`` for the activated ``tags``.

    ``mode`` is ``"full"`` or ``"skip-first-level"``. Returns a
    :class:`~lorevault.manifest.reconcile.SyncResult`.
    """
    from .manifest.reconcile import sync_manifest

    with _session() as resolver:
        manifest = _manifest(recipe, tags, resolver)
        return sync_manifest(
            manifest,
            target,
            _mode(mode),
            resolver=resolver,
            confirm=confirm,
            jobs=jobs,
        )


def manifest_list(recipe: str, tags: Iterable[str] = ()) -> list[str]:
    with _session() as resolver:
        return _manifest(recipe, tags, resolver).paths()


def tags(recipe: str) -> list[str]:
    from .recipe.load import load_recipe
    from .recipe.types import recipe_tags

    with _session() as resolver:
        return recipe_tags(load_recipe(recipe, resolver=resolver, allow_relative=True))


def check(recipe: str, tags: Iterable[str] = (), *, jobs: int | None = None):
    from .check import check_manifest

    with _session() as resolver:
        manifest = _manifest(recipe, tags, resolver)
        return check_manifest(manifest, resolver, jobs=jobs)


def show(locator: str) -> bytes:
    """Fetch a single compact source locator."""
    import os

    from .recipe.locators import parse_locator
    from .recipe.types import Archive, LocalFile

    ref = parse_locator(locator)
    if isinstance(ref, LocalFile):
        ref = LocalFile(os.path.abspath(os.path.expanduser(ref.path)))
    elif isinstance(ref, Archive) and isinstance(ref.parent, LocalFile):
        parent = LocalFile(os.path.abspath(os.path.expanduser(ref.parent.path)))
        ref = Archive(parent, ref.member)
    with _session() as resolver:
        return resolver.resolve(ref)


def clean(
    recipe: str,
    target: str | Path,
    tags: Iterable[str] = (),
    mode="full",
    confirm=None,
) -> list[Path]:
    from .manifest.reconcile import SyncMode, clean_target

    mode = _mode(mode)
    if mode is SyncMode.FULL:
        return clean_target(target, mode, confirm=confirm)
    with _session() as resolver:
        manifest = _manifest(recipe, tags, resolver)
    return clean_target(target, mode, manifest, confirm=confirm)
