from __future__ import annotations

from typing import Any

import yaml

from ..errors import ParseError
from ..utils import normalize_hash
from .types import (
    Archive,
    Auto,
    Delete,
    DirectoryEntry,
    EditOp,
    FileEntry,
    GitBlob,
    IncludeSpec,
    Insert,
    LocalFile,
    Recipe,
    RemoteHost,
    Replace,
    SourceRef,
    Text,
    Url,
)

_TOP_KEYS = {"variables", "var", "file", "directory", "include"}
_FILE_KEYS = {"path", "hash", "tags", "sources", "source", "edit"}
_DIRECTORY_KEYS = {"path", "count", "ignore_hidden", "tags", "sources", "source"}
_INCLUDE_KEYS = {"config", "hash", "path", "tags", "with_tags"}
_SOURCE_KEYS = {
    "file": {"path"},
    "local": {"path"},
    "git": {"repo", "id", "rev", "commit", "path"},
    "archive": {"archive", "path", "member"},
    "text": {"content", "ignore_variables"},
    "http": {"url"},
    "url": {"url"},
    "sftp": {"user", "host", "service", "port", "path"},
    "ssh": {"user", "host", "service", "port", "path"},
}
_EDIT_KEYS = {
    "insert": {"content", "position", "after", "tags"},
    "replace": {"from", "replace_from", "to", "optional", "tags"},
    "delete": {"start", "end", "tags"},
}


def _check_keys(data: dict[str, Any], allowed: set[str], what: str) -> None:
    extra = set(data) - allowed
    if extra:
        unknown = ", ".join(sorted(str(k) for k in extra))
        raise ParseError(f"{what} has invalid keys: {unknown}")


def _require_str(data: dict[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ParseError(f"{what} must define a non-empty string '{key}'")
    return value


def _parse_tags(value: Any, what: str) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset({value})
    if not isinstance(value, list) or not all(isinstance(t, str) and t for t in value):
        raise ParseError(f"{what} 'tags' must be a list of strings")
    return frozenset(value)


def _parse_hash(value: Any, what: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ParseError(f"{what} 'hash' must be a string")
    try:
        return normalize_hash(value)
    except ValueError as exc:
        raise ParseError(f"{what}: {exc}") from exc


def _parse_int(value: Any, what: str, *, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ParseError(f"{what} must be an integer")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < minimum:
        raise ParseError(f"{what} must be an integer >= {minimum}")
    return value


def parse_source(node: Any, what: str = "source") -> SourceRef:
    if isinstance(node, str):
        if not node.strip():
            raise ParseError(f"{what} must not be empty")
        return Auto(node.strip())
    if not isinstance(node, dict):
        raise ParseError(f"{what} must be a string or a mapping, got {type(node).__name__}")

    kind = node.get("type")
    if kind not in _SOURCE_KEYS:
        raise ParseError(f"{what} has unknown type {kind!r}")
    _check_keys(node, _SOURCE_KEYS[kind] | {"type"}, f"{what} ({kind})")

    if kind in {"file", "local"}:
        return LocalFile(_require_str(node, "path", what))
    if kind == "git":
        rev = node.get("id") or node.get("rev") or node.get("commit")
        if not isinstance(rev, str) or not rev:
            raise ParseError(f"{what} (git) must define 'id'")
        path = node.get("path", "")
        if not isinstance(path, str):
            raise ParseError(f"{what} (git) 'path' must be a string")
        return GitBlob(_require_str(node, "repo", what), rev, path.strip("/"))
    if kind == "archive":
        if "archive" not in node:
            raise ParseError(f"{what} (archive) must define 'archive'")
        parent = parse_source(node["archive"], f"{what} archive")
        member = node.get("path") or node.get("member")
        if not isinstance(member, str) or not member:
            raise ParseError(f"{what} (archive) must define 'path'")
        return Archive(parent, member)
    if kind == "text":
        content = node.get("content")
        if not isinstance(content, str):
            raise ParseError(f"{what} (text) must define 'content'")
        return Text(content, substitute=not bool(node.get("ignore_variables", False)))
    if kind in {"http", "url"}:
        return Url(_require_str(node, "url", what))

    host = node.get("host") or node.get("service")
    if not isinstance(host, str) or not host:
        raise ParseError(f"{what} ({kind}) must define 'host'")
    port = _parse_int(node.get("port", 22), f"{what} ({kind}) 'port'", minimum=1)
    return RemoteHost(
        user=_require_str(node, "user", what),
        host=host,
        path=_require_str(node, "path", what),
        port=port,
    )


def _edit_kind(node: dict[str, Any]) -> str | None:
    kind = node.get("type")
    if kind is not None:
        return kind
    if "from" in node or "replace_from" in node:
        return "replace"
    if "start" in node:
        return "delete"
    if "content" in node:
        return "insert"
    return None


def parse_edit(node: Any, what: str = "edit") -> EditOp:
    if not isinstance(node, dict):
        raise ParseError(f"{what} must be a mapping")
    kind = _edit_kind(node)
    if kind not in _EDIT_KEYS:
        raise ParseError(f"{what} has unknown type {kind!r}")
    _check_keys(node, _EDIT_KEYS[kind] | {"type"}, f"{what} ({kind})")
    tags = _parse_tags(node.get("tags"), what)

    if kind == "insert":
        content = node.get("content")
        if not isinstance(content, str):
            raise ParseError(f"{what} (insert) must define 'content'")
        if "after" in node:
            position: Any = _parse_int(node["after"], f"{what} (insert) 'after'")
        else:
            position = node.get("position", "end")
            if position not in {"start", "end"}:
                position = _parse_int(position, f"{what} (insert) 'position'")
        return Insert(content, position, tags)

    if kind == "replace":
        old = node.get("from", node.get("replace_from"))
        new = node.get("to")
        if not isinstance(old, str) or not old:
            raise ParseError(f"{what} (replace) must define a non-empty 'from'")
        if not isinstance(new, str):
            raise ParseError(f"{what} (replace) must define 'to'")
        return Replace(old, new, bool(node.get("optional", False)), tags)

    start = _parse_int(node.get("start"), f"{what} (delete) 'start'", minimum=1)
    end = _parse_int(node.get("end", start), f"{what} (delete) 'end'", minimum=1)
    return Delete(start, end, tags)


def _sources(node: dict[str, Any], what: str) -> list[Any]:
    raw = node.get("sources", node.get("source"))
    if raw is None:
        raise ParseError(f"{what} must define 'sources'")
    if not isinstance(raw, list):
        raw = [raw]
    if not raw:
        raise ParseError(f"{what} must define at least one source")
    return raw


def parse_file(node: Any, index: int) -> FileEntry:
    what = f"File at index {index}"
    if not isinstance(node, dict):
        raise ParseError(f"{what} must be a mapping")
    _check_keys(node, _FILE_KEYS, what)
    path = _require_str(node, "path", what)
    what = f"File {path}"
    edits = node.get("edit", [])
    if not isinstance(edits, list):
        raise ParseError(f"{what} 'edit' must be a list")
    return FileEntry(
        path=path,
        sources=tuple(
            parse_source(s, f"{what} source {i}")
            for i, s in enumerate(_sources(node, what))
        ),
        hash=_parse_hash(node.get("hash"), what),
        tags=_parse_tags(node.get("tags"), what),
        edits=tuple(parse_edit(e, f"{what} edit {i}") for i, e in enumerate(edits)),
    )


def parse_directory(node: Any, index: int) -> DirectoryEntry:
    what = f"Directory at index {index}"
    if not isinstance(node, dict):
        raise ParseError(f"{what} must be a mapping")
    _check_keys(node, _DIRECTORY_KEYS, what)
    path = _require_str(node, "path", what)
    what = f"Directory {path}"
    count = node.get("count")
    sources = []
    for i, raw in enumerate(_sources(node, what)):
        source = parse_source(raw, f"{what} source {i}")
        if not isinstance(source, (Auto, LocalFile, GitBlob)):
            raise ParseError(
                f"{what} source {i} must be a local folder or a git tree", path=path
            )
        sources.append(source)
    return DirectoryEntry(
        path=path,
        sources=tuple(sources),
        count=None if count is None else _parse_int(count, f"{what} 'count'"),
        ignore_hidden=bool(node.get("ignore_hidden", False)),
        tags=_parse_tags(node.get("tags"), what),
    )


def parse_include(node: Any, index: int) -> IncludeSpec:
    what = f"Include at index {index}"
    if not isinstance(node, dict):
        raise ParseError(f"{what} must be a mapping")
    _check_keys(node, _INCLUDE_KEYS, what)
    config = _require_str(node, "config", what)
    what = f"Include {config}"
    path = node.get("path", "")
    if not isinstance(path, str):
        raise ParseError(f"{what} 'path' must be a string")
    return IncludeSpec(
        config=config,
        path=path,
        hash=_parse_hash(node.get("hash"), what),
        tags=_parse_tags(node.get("tags"), what),
        with_tags=_parse_tags(node.get("with_tags"), f"{what} with_tags"),
    )


def _entries(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key) or []
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, list):
        raise ParseError(f"'{key}' must be a list")
    return value


def parse_recipe_data(data: Any, *, origin: SourceRef | None = None) -> Recipe:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ParseError("Recipe must be a YAML mapping")
    _check_keys(data, _TOP_KEYS, "Recipe")

    variables = data.get("variables", data.get("var")) or {}
    if not isinstance(variables, dict):
        raise ParseError("'variables' must be a mapping")
    for name, value in variables.items():
        if not isinstance(name, str) or not name:
            raise ParseError("Variable names must be non-empty strings")
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ParseError(f"Variable {name} must be a string")

    return Recipe(
        variables={name: str(value) for name, value in variables.items()},
        files=tuple(parse_file(s, i) for i, s in enumerate(_entries(data, "file"))),
        directories=tuple(
            parse_directory(s, i) for i, s in enumerate(_entries(data, "directory"))
        ),
        includes=tuple(
            parse_include(s, i) for i, s in enumerate(_entries(data, "include"))
        ),
        origin=origin,
    )


def parse_recipe(text: str, *, origin: SourceRef | None = None) -> Recipe:
    """Parse recipe YAML into an unresolved :class:`Recipe`."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ParseError(f"Invalid YAML: {exc}") from exc
    try:
        return parse_recipe_data(data, origin=origin)
    except ParseError as exc:
        if origin is not None and exc.locator is None:
            from .types import describe_source

            label = describe_source(origin)
            raise ParseError(f"{exc} ({label})", path=exc.path, locator=label) from exc
        raise
