from __future__ import annotations

import os
import re
from dataclasses import replace
from typing import Mapping

from ..errors import (
    CyclicVariable,
    ParseError,
    RelativePathNotAllowed,
    UndefinedVariable,
)
from ..git.target import is_remote_repo
from ..utils import normalize_subpath
from .locators import parse_locator
from .types import (
    Archive,
    Auto,
    GitBlob,
    LocalFile,
    Recipe,
    RemoteHost,
    SourceRef,
    Text,
    Url,
)

PLACEHOLDER_RE = re.compile(r"\{\{([^{}]+)\}\}")
RESERVED_PREFIX = "SELF_"


def resolve_variables(
    raw: Mapping[str, str], *, locator: str | None = None
) -> dict[str, str]:
    """
    Resolve variables that reference each other.

    Each value has its placeholders replaced by the fully resolved values
    they name. The replaced text is not scanned again, so ``{{{{x}}}}``
    with ``x = "v"`` becomes ``{{v}}``.
    """
    resolved: dict[str, str] = {}

    def visit(name: str, chain: list[str]) -> str:
        if name in resolved:
            return resolved[name]
        if name in chain:
            raise CyclicVariable(chain[chain.index(name) :] + [name], locator=locator)
        if name not in raw:
            raise UndefinedVariable(name, locator=locator)
        chain.append(name)
        value = PLACEHOLDER_RE.sub(
            lambda m: visit(m.group(1).strip(), chain), raw[name]
        )
        chain.pop()
        resolved[name] = value
        return value

    for name in raw:
        visit(name, [])
    return resolved


def substitute(text: str, variables: Mapping[str, str], *, locator: str | None = None) -> str:
    def _lookup(match: re.Match) -> str:
        name = match.group(1).strip()
        if name not in variables:
            raise UndefinedVariable(name, locator=locator)
        return variables[name]

    return PLACEHOLDER_RE.sub(_lookup, text)


def resolve_recipe(recipe: Recipe, builtins: Mapping[str, str] | None = None) -> Recipe:
    """
    Return a copy of ``recipe`` with every placeholder expanded.

    Expanded: target paths, source locators, text source content (unless it
    opts out), include locators and destinations. Hashes, tags, type names
    and edits are left alone. Built-ins such as ``SELF_ROOT`` describe where
    the recipe itself was loaded from and cannot be redefined.
    """
    locator = recipe.label
    for name in recipe.variables:
        if name.startswith(RESERVED_PREFIX):
            raise ParseError(
                f"Variables starting with {RESERVED_PREFIX} are protected: {name}",
                locator=locator,
            )
    raw = dict(recipe.variables)
    raw.update(builtins or {})
    variables = resolve_variables(raw, locator=locator)

    def sub(text: str) -> str:
        return substitute(text, variables, locator=locator)

    def target(path: str) -> str:
        try:
            return normalize_subpath(sub(path))
        except ValueError as exc:
            raise ParseError(str(exc), path=path, locator=locator) from exc

    files = tuple(
        replace(
            entry,
            path=target(entry.path),
            sources=tuple(_resolve_source(s, sub) for s in entry.sources),
        )
        for entry in recipe.files
    )
    directories = tuple(
        replace(
            directory,
            path=target(directory.path),
            sources=tuple(
                _directory_source(_resolve_source(s, sub), directory.path, locator)
                for s in directory.sources
            ),
        )
        for directory in recipe.directories
    )
    includes = tuple(
        replace(inc, config=sub(inc.config), path=_include_destination(sub(inc.path), locator))
        for inc in recipe.includes
    )
    for entry in files:
        for source in entry.sources:
            check_absolute(source)
    for directory in directories:
        for source in directory.sources:
            check_absolute(source)

    return replace(
        recipe,
        variables=variables,
        files=files,
        directories=directories,
        includes=includes,
        resolved=True,
    )


def _include_destination(path: str, locator: str) -> str:
    if not path.strip("/."):
        return ""
    try:
        return normalize_subpath(path)
    except ValueError as exc:
        raise ParseError(str(exc), path=path, locator=locator) from exc


def _resolve_source(ref: SourceRef, sub) -> SourceRef:
    if isinstance(ref, Auto):
        return parse_locator(sub(ref.locator))
    if isinstance(ref, LocalFile):
        return LocalFile(sub(ref.path))
    if isinstance(ref, GitBlob):
        return GitBlob(sub(ref.repo), sub(ref.rev), sub(ref.path))
    if isinstance(ref, Archive):
        return Archive(_resolve_source(ref.parent, sub), sub(ref.member))
    if isinstance(ref, Text):
        if not ref.substitute:
            return ref
        return Text(sub(ref.content), ref.substitute)
    if isinstance(ref, Url):
        return Url(sub(ref.url))
    if isinstance(ref, RemoteHost):
        return RemoteHost(sub(ref.user), sub(ref.host), sub(ref.path), ref.port)
    raise TypeError(f"Unknown source type: {type(ref)!r}")


def _directory_source(ref: SourceRef, path: str, locator: str) -> SourceRef:
    if not isinstance(ref, (LocalFile, GitBlob)):
        raise ParseError(
            f"Directory {path} can only be listed from a local folder or a git tree",
            path=path,
            locator=locator,
        )
    return ref


def check_absolute(ref: SourceRef) -> None:
    """Local paths (and local git repositories) must be absolute."""
    if isinstance(ref, LocalFile):
        if not os.path.isabs(ref.path):
            raise RelativePathNotAllowed(ref.path)
    elif isinstance(ref, GitBlob):
        if not is_remote_repo(ref.repo) and not os.path.isabs(ref.repo):
            raise RelativePathNotAllowed(ref.repo)
    elif isinstance(ref, Archive):
        check_absolute(ref.parent)
