from __future__ import annotations

import logging
from typing import Iterable

from .errors import EditError
from .recipe.types import Delete, EditOp, Insert, Replace, is_active

logger = logging.getLogger(__name__)

_LINE_ENDINGS = ("\r\n", "\n", "\r")


def _newline_style(text: str) -> str:
    for line in text.splitlines(keepends=True):
        for ending in _LINE_ENDINGS:
            if line.endswith(ending):
                return ending
    return "\n"


def _has_terminator(line: str) -> bool:
    return line.endswith(("\n", "\r"))


def _insert(text: str, op: Insert, path: str | None) -> str:
    lines = text.splitlines(keepends=True)
    newline = _newline_style(text)
    if op.position == "start":
        index = 0
    elif op.position == "end":
        index = len(lines)
    else:
        index = op.position
        if index < 0 or index > len(lines):
            raise EditError(
                f"Cannot insert after line {index} of {path or 'file'}: "
                f"it has {len(lines)} lines",
                path=path,
            )

    block = op.content.splitlines(keepends=True) or [""]
    at_unterminated_end = index == len(lines) and bool(lines) and not _has_terminator(
        lines[-1]
    )
    if index > 0 and not _has_terminator(lines[index - 1]):
        lines[index - 1] += newline
    if not _has_terminator(block[-1]) and not at_unterminated_end:
        block[-1] += newline
    lines[index:index] = block
    return "".join(lines)


def _replace(text: str, op: Replace, path: str | None) -> str:
    if op.old not in text:
        if op.optional:
            logger.debug("Optional replacement %r not found in %s", op.old, path)
            return text
        raise EditError(
            f"Replacement {op.old!r} was required but not found in {path or 'file'}",
            path=path,
        )
    return text.replace(op.old, op.new)


def _delete(text: str, op: Delete, path: str | None) -> str:
    lines = text.splitlines(keepends=True)
    if op.start < 1 or op.end < op.start or op.end > len(lines):
        raise EditError(
            f"Cannot delete lines {op.start}-{op.end} of {path or 'file'}: "
            f"it has {len(lines)} lines",
            path=path,
        )
    del lines[op.start - 1 : op.end]
    return "".join(lines)


def active_edits(edits: Iterable[EditOp], tags: Iterable[str]) -> list[EditOp]:
    activated = frozenset(tags)
    return [op for op in edits if is_active(op.tags, activated)]


def apply_edits(
    data: bytes,
    edits: Iterable[EditOp],
    tags: Iterable[str] = (),
    *,
    path: str | None = None,
) -> bytes:
    """
    Apply ``edits`` to ``data`` in order and return the new bytes.

    Each op sees the text as left by the previous one, so line numbers
    shift. Ops whose tags are not activated are skipped. Line terminators
    already in the file are preserved.
    """
    ops = active_edits(edits, tags)
    if not ops:
        return data
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise EditError(
            f"Cannot edit {path or 'file'}: content is not valid UTF-8", path=path
        ) from exc

    for op in ops:
        if isinstance(op, Insert):
            text = _insert(text, op, path)
        elif isinstance(op, Replace):
            text = _replace(text, op, path)
        elif isinstance(op, Delete):
            text = _delete(text, op, path)
        else:
            raise TypeError(f"Unknown edit type: {type(op)!r}")
    return text.encode("utf-8")
