from __future__ import annotations

import logging
import os
import posixpath
from typing import Callable

from ..errors import (
    HashMismatch,
    IncludeError,
    LorevaultError,
    ParseError,
    RelativePathNotAllowed,
)
from ..git.target import is_remote_repo
from ..utils import compute_hash
from .locators import parse_locator
from .parse import parse_recipe
from .types import Auto, GitBlob, LocalFile, Recipe, SourceRef, describe_source
from .variables import resolve_recipe

logger = logging.getLogger(__name__)

Fetch = Callable[[SourceRef], bytes]


def recipe_origin(locator: str | SourceRef, *, allow_relative: bool = False) -> SourceRef:
    """Turn a recipe locator into the local file or git blob it names."""
    ref = parse_locator(locator) if isinstance(locator, str) else locator
    if isinstance(ref, Auto):
        ref = parse_locator(ref.locator)
    if isinstance(ref, LocalFile):
        path = os.path.expanduser(ref.path)
        if not os.path.isabs(path):
            if not allow_relative:
                raise RelativePathNotAllowed(ref.path)
            path = os.path.abspath(path)
        return LocalFile(os.path.normpath(path))
    if isinstance(ref, GitBlob):
        repo = ref.repo
        if not is_remote_repo(repo) and not os.path.isabs(repo):
            if not allow_relative:
                raise RelativePathNotAllowed(repo)
            repo = os.path.abspath(os.path.expanduser(repo))
        return GitBlob(repo, ref.rev, ref.path)
    raise IncludeError(
        f"Recipes can only be loaded from a local file or a git revision: "
        f"{describe_source(ref)}",
        locator=describe_source(ref),
    )


def self_variables(origin: SourceRef) -> dict[str, str]:
    """Built-in variables describing where a recipe was loaded from."""
    if isinstance(origin, LocalFile):
        parent = os.path.dirname(os.path.realpath(origin.path))
        return {
            "SELF_PARENT": parent,
            "SELF_ROOT": parent,
            "SELF_NAME": os.path.basename(origin.path),
        }
    if isinstance(origin, GitBlob):
        repo = origin.repo
        if not is_remote_repo(repo):
            repo = os.path.realpath(repo)
        return {
            "SELF_REPO": origin.repo,
            "SELF_ID": origin.rev,
            "SELF_NAME": posixpath.basename(origin.path),
            "SELF_ROOT": f"{repo}#{origin.rev}:",
        }
    return {}


def load_recipe(
    locator: str | SourceRef,
    *,
    resolver: Fetch,
    allow_relative: bool = False,
    expected_hash: str | None = None,
) -> Recipe:
    """
    Fetch, verify, parse and resolve one recipe.

    ``expected_hash`` is checked against the raw recipe text before it is
    parsed. Only the top-level recipe may be given as a relative path.
    """
    origin = recipe_origin(locator, allow_relative=allow_relative)
    label = describe_source(origin)
    try:
        data = resolver(origin)
    except LorevaultError as exc:
        raise IncludeError(f"Could not load recipe {label}: {exc}", locator=label) from exc

    if expected_hash is not None:
        actual = compute_hash(data)
        if actual != expected_hash:
            raise HashMismatch(expected_hash, actual, locator=label)

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Recipe {label} is not valid UTF-8", locator=label) from exc

    logger.debug("Loaded recipe %s", label)
    recipe = parse_recipe(text, origin=origin)
    return resolve_recipe(recipe, self_variables(origin))
